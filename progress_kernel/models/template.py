"""
Module: progress_kernel.models.template
Responsibility: ORM persistence for progress templates (global defaults and
    project overrides) and the append-only template change log.
Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions.py only.

Invariants enforced:
    - A template row is never edited.  A weight change writes a NEW version
      and deactivates the previous one; the only column that may change on
      an existing row is is_active (enforced in db/immutability.py).
    - At most one active row per (component_type, project_id); project_id
      NULL is the global default.  Enforced by TemplateService.
    - TemplateChange rows are immutable audit records.

Audit relevance:
    Milestone events copy weight and category at write time, so historical
    reports never depend on which template version is active today.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import Base, TrackedBase, UUIDString


class ProgressTemplate(TrackedBase):
    """
    Ordered milestone list for a work-item type.

    milestones is a JSON list of objects with keys name, weight (decimal
    string), category, is_partial and order.
    """

    __tablename__ = "progress_templates"

    __table_args__ = (
        UniqueConstraint(
            "component_type", "project_id", "version",
            name="uq_template_type_project_version",
        ),
        Index("idx_template_lookup", "component_type", "project_id", "is_active"),
    )

    component_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # NULL = global default
    project_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    milestones: Mapped[list] = mapped_column(JSON, nullable=False)

    @property
    def is_default(self) -> bool:
        return self.project_id is None

    def __repr__(self) -> str:
        scope = "default" if self.is_default else str(self.project_id)
        return f"<ProgressTemplate {self.component_type}@{scope} v{self.version}>"


class TemplateChange(Base):
    """
    Immutable audit row written for every template override save.

    Contract:
        Never updated or deleted after INSERT.
    """

    __tablename__ = "template_changes"

    __table_args__ = (
        Index("idx_template_change_project_type", "project_id", "component_type"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    component_type: Mapped[str] = mapped_column(String(50), nullable=False)

    template_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("progress_templates.id"),
        nullable=False,
    )

    previous_template_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("progress_templates.id"),
        nullable=True,
    )

    # {milestone name: weight string}
    old_weights: Mapped[dict] = mapped_column(JSON, nullable=False)

    new_weights: Mapped[dict] = mapped_column(JSON, nullable=False)

    apply_to_existing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    changed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    changed_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<TemplateChange {self.component_type} -> {self.template_id}>"
