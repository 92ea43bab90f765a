"""
Module: progress_kernel.models.review
Responsibility: ORM persistence for the needs-review queue.  A component with
    at least one pending review item counts as blocked in the aggregation
    cache.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import TrackedBase, UUIDString


class ReviewType(str, Enum):
    OUT_OF_SEQUENCE = "out_of_sequence"
    ROLLBACK = "rollback"
    DRAWING_CHANGE = "drawing_change"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class ReviewItem(TrackedBase):
    """A flagged condition on a component awaiting a human decision."""

    __tablename__ = "review_items"

    __table_args__ = (
        Index("idx_review_project_status", "project_id", "status"),
        Index("idx_review_component_status", "component_id", "status"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    component_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("components.id"),
        nullable=False,
    )

    review_type: Mapped[str] = mapped_column(String(30), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReviewStatus.PENDING.value
    )

    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    resolved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ReviewItem {self.review_type}:{self.status}>"
