"""
Module: progress_kernel.models.grouping
Responsibility: ORM persistence for grouping entities (areas, systems, test
    packages).
Architecture position: Kernel > Models.  May import from db/base.py only.

Membership of a grouping entity is NOT a stored foreign key.  A component
belongs to an entity when its resolved grouping attribute (component
override, else drawing value) equals the entity's id.  See
progress_kernel.domain.inheritance.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import TrackedBase, UUIDString


class GroupingKind(str, Enum):
    """Kind of grouping entity.  Each kind owns one inheritable attribute."""

    AREA = "area"
    SYSTEM = "system"
    TEST_PACKAGE = "test_package"


class GroupingEntity(TrackedBase):
    """An area, system or test package inside a project."""

    __tablename__ = "grouping_entities"

    __table_args__ = (
        UniqueConstraint("project_id", "kind", "name", name="uq_grouping_project_kind_name"),
        Index("idx_grouping_project_kind", "project_id", "kind"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<GroupingEntity {self.kind}:{self.name}>"
