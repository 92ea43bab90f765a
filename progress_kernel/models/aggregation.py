"""
Module: progress_kernel.models.aggregation
Responsibility: ORM persistence for the aggregation cache, one row per
    (scope kind, scope id).
Architecture position: Kernel > Models.  May import from db/base.py and
    db/types.py only.

Invariants enforced:
    - Only the aggregation refresher writes this table.  Each refresh cycle
      replaces a project's rows wholesale inside one transaction, so readers
      see either the previous snapshot or the new one.
    - refreshed_at is the snapshot's "as of" marker; staleness is observable,
      never an error.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import Base, UUIDString
from progress_kernel.db.types import Hours, Percent


class AggregationScope(str, Enum):
    """Scope kinds of cached rollups."""

    DRAWING = "drawing"
    AREA = "area"
    SYSTEM = "system"
    TEST_PACKAGE = "test_package"
    PROJECT = "project"


class AggregationRecord(Base):
    """Precomputed rollup for one drawing, grouping entity or project."""

    __tablename__ = "aggregation_records"

    __table_args__ = (
        UniqueConstraint("scope_kind", "scope_id", name="uq_aggregation_scope"),
        Index("idx_aggregation_project", "project_id"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    scope_kind: Mapped[str] = mapped_column(String(20), nullable=False)

    scope_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    total_components: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    completed_components: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    average_percent: Mapped[Percent] = mapped_column(nullable=False, default=Decimal("0"))

    blocked_components: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    budget_hours: Mapped[Hours] = mapped_column(nullable=False, default=Decimal("0"))

    earned_hours: Mapped[Hours] = mapped_column(nullable=False, default=Decimal("0"))

    last_activity_at: Mapped[datetime | None] = mapped_column(nullable=True)

    refreshed_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<AggregationRecord {self.scope_kind}:{self.scope_id}>"
