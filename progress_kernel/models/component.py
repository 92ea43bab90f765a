"""
Module: progress_kernel.models.component
Responsibility: ORM persistence for components, the trackable physical work
    items whose milestone state is folded from the milestone event log.
Architecture position: Kernel > Models.  May import from db/base.py and
    db/types.py only.

Invariants enforced:
    - percent_complete equals the weighted sum of the milestone state under
      the resolved template; it is written only by the milestone recorder
      and the recompute job, in the same flush as the state it derives from.
    - version is a SQLAlchemy version counter: every UPDATE bumps it and an
      UPDATE against a stale version raises StaleDataError.
    - last_event_sequence is the sequence of the newest milestone event for
      this component (0 before the first event).
    - Components are soft-retired, never deleted.

Failure modes:
    - StaleDataError when two sessions update the same component row; the
      services translate it to ConcurrentModificationConflict.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import TrackedBase, UUIDString
from progress_kernel.db.types import ExactPercent, Hours


class Component(TrackedBase):
    """
    A trackable work item (spool, field weld, valve, ...).

    Contract:
        milestones maps milestone name -> value (0-100).  The mapping is
        replaced wholesale on every write, never mutated in place.

    Grouping attributes (area_id, system_id, test_package_id) are explicit
    overrides.  Null means "inherit from the drawing".
    """

    __tablename__ = "components"

    __table_args__ = (
        Index("idx_component_project_type", "project_id", "component_type"),
        Index("idx_component_drawing", "drawing_id"),
        Index("idx_component_identity", "project_id", "component_type", "identity_text"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    component_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Type-specific composite identity, e.g. {"spool_id": "SP-001"}
    identity_key: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Canonical text form of identity_key for lookups
    identity_text: Mapped[str] = mapped_column(String(500), nullable=False)

    milestones: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    percent_complete: Mapped[ExactPercent] = mapped_column(nullable=False, default=Decimal("0"))

    budget_hours: Mapped[Hours] = mapped_column(nullable=False, default=Decimal("0"))

    drawing_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("drawings.id"),
        nullable=True,
    )

    area_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("grouping_entities.id"),
        nullable=True,
    )

    system_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("grouping_entities.id"),
        nullable=True,
    )

    test_package_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("grouping_entities.id"),
        nullable=True,
    )

    is_retired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    retired_at: Mapped[datetime | None] = mapped_column(nullable=True)

    retire_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    last_event_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Component {self.component_type}:{self.identity_text}>"
