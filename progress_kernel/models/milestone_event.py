"""
Module: progress_kernel.models.milestone_event
Responsibility: ORM persistence for the append-only milestone event log, the
    sole source of truth for delta reporting and the component audit trail.
Architecture position: Kernel > Models.  May import from db/base.py,
    db/types.py and exceptions.py only.

Invariants enforced:
    - Events are immutable (ORM before_update / before_delete listeners).
    - (component_id, sequence) is unique: events of one component are
      totally ordered and a concurrent writer computing against a stale
      previous value collides on INSERT.
    - delta_hours, weight and category are copied at write time; template
      edits never alter historical rows.

Failure modes:
    - ImmutabilityViolationError on any UPDATE or DELETE.
    - IntegrityError on a duplicate (component_id, sequence).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import Base, UUIDString
from progress_kernel.db.types import Hours, MilestoneValue, Weight
from progress_kernel.exceptions import ImmutabilityViolationError


class MilestoneEvent(Base):
    """
    One applied milestone change.

    Guarantees:
        - delta_hours = budget x contribution change, computed at write time.
        - previous_value and new_value are the stored milestone values
          before and after the change.
    """

    __tablename__ = "milestone_events"

    __table_args__ = (
        UniqueConstraint("component_id", "sequence", name="uq_milestone_event_sequence"),
        Index("idx_milestone_event_project_recorded", "project_id", "recorded_at"),
        Index("idx_milestone_event_component", "component_id", "sequence"),
    )

    component_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("components.id"),
        nullable=False,
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    milestone_name: Mapped[str] = mapped_column(String(100), nullable=False)

    action: Mapped[str] = mapped_column(String(20), nullable=False)

    previous_value: Mapped[MilestoneValue] = mapped_column(nullable=False)

    new_value: Mapped[MilestoneValue] = mapped_column(nullable=False)

    delta_hours: Mapped[Hours] = mapped_column(nullable=False, default=Decimal("0"))

    category: Mapped[str] = mapped_column(String(20), nullable=False)

    weight: Mapped[Weight] = mapped_column(nullable=False)

    template_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<MilestoneEvent {self.component_id}#{self.sequence} "
            f"{self.milestone_name} {self.previous_value}->{self.new_value}>"
        )


@event.listens_for(MilestoneEvent, "before_update")
def prevent_milestone_event_update(mapper, connection, target):
    """Milestone events are append-only; any UPDATE is rejected."""
    raise ImmutabilityViolationError(
        entity_type="MilestoneEvent",
        entity_id=str(target.id),
        reason="Milestone events are immutable",
    )


@event.listens_for(MilestoneEvent, "before_delete")
def prevent_milestone_event_delete(mapper, connection, target):
    """Milestone events are append-only; any DELETE is rejected."""
    raise ImmutabilityViolationError(
        entity_type="MilestoneEvent",
        entity_id=str(target.id),
        reason="Milestone events cannot be deleted",
    )
