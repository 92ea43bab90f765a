"""
Module: progress_kernel.selectors.component_selector
Responsibility: Read-only component queries with grouping attributes
    resolved through the inheritance chain, plus the per-component audit
    trail and review queue.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Membership is COMPUTED, never read from a grouping column alone.
      iter_resolved_components() is the single path that pairs a component
      with its drawing and calls resolve_grouping(); the listing, the
      aggregation refresher and the delta report all consume it.
    - Retired components are excluded unless explicitly requested.

Failure modes:
    - ComponentNotFoundError / DrawingNotFoundError / GroupingNotFoundError
      for unknown ids.
"""

from collections.abc import Iterator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from progress_kernel.db.types import ensure_utc
from progress_kernel.domain.dtos import ComponentView, MilestoneEventRecord, ReviewItemView
from progress_kernel.domain.inheritance import KIND_TO_ATTRIBUTE, resolve_grouping
from progress_kernel.domain.percent import as_decimal
from progress_kernel.exceptions import ComponentNotFoundError, DrawingNotFoundError, GroupingNotFoundError
from progress_kernel.models.component import Component
from progress_kernel.models.drawing import Drawing
from progress_kernel.models.grouping import GroupingEntity
from progress_kernel.models.milestone_event import MilestoneEvent
from progress_kernel.models.review import ReviewItem, ReviewStatus
from progress_kernel.selectors.base import BaseSelector


def to_component_view(component: Component, drawing: Drawing | None) -> ComponentView:
    """Detach a component row into a DTO with resolved grouping."""
    return ComponentView(
        component_id=component.id,
        project_id=component.project_id,
        component_type=component.component_type,
        identity_key=dict(component.identity_key or {}),
        identity_text=component.identity_text,
        milestones={name: as_decimal(v) for name, v in (component.milestones or {}).items()},
        percent_complete=as_decimal(component.percent_complete),
        budget_hours=as_decimal(component.budget_hours),
        drawing_id=component.drawing_id,
        grouping=resolve_grouping(component, drawing),
        is_retired=component.is_retired,
        version=component.version,
        last_event_sequence=component.last_event_sequence,
    )


def to_review_view(item: ReviewItem) -> ReviewItemView:
    return ReviewItemView(
        review_id=item.id,
        component_id=item.component_id,
        review_type=item.review_type,
        status=item.status,
        payload=dict(item.payload or {}),
        created_at=ensure_utc(item.created_at),
        resolved_at=ensure_utc(item.resolved_at),
        resolution_note=item.resolution_note,
    )


def iter_resolved_components(
    session: Session,
    project_id: UUID,
    include_retired: bool = False,
) -> Iterator[ComponentView]:
    """Yield every component of a project paired with its drawing, resolved."""
    stmt = (
        select(Component, Drawing)
        .outerjoin(Drawing, Component.drawing_id == Drawing.id)
        .where(Component.project_id == project_id)
    )
    if not include_retired:
        stmt = stmt.where(Component.is_retired.is_(False))
    stmt = stmt.order_by(Component.component_type, Component.identity_text)

    for component, drawing in session.execute(stmt):
        yield to_component_view(component, drawing)


class ComponentSelector(BaseSelector[Component]):
    """Component reads."""

    def get_component(self, component_id: UUID) -> ComponentView:
        row = self.session.execute(
            select(Component, Drawing)
            .outerjoin(Drawing, Component.drawing_id == Drawing.id)
            .where(Component.id == component_id)
        ).first()
        if row is None:
            raise ComponentNotFoundError(str(component_id))
        component, drawing = row
        return to_component_view(component, drawing)

    def iter_project_components(self, project_id: UUID, include_retired: bool = False) -> Iterator[ComponentView]:
        return iter_resolved_components(self.session, project_id, include_retired)

    def list_components_by_grouping(self, grouping_id: UUID, project_id: UUID) -> list[ComponentView]:
        """
        Non-retired components whose RESOLVED grouping equals the entity.

        Includes components inheriting from their drawing and excludes
        components whose explicit override points elsewhere.
        """
        grouping = self.session.get(GroupingEntity, grouping_id)
        if grouping is None or grouping.project_id != project_id:
            raise GroupingNotFoundError(str(grouping_id))
        attribute = KIND_TO_ATTRIBUTE[grouping.kind]
        return [
            view
            for view in iter_resolved_components(self.session, project_id)
            if view.resolved(attribute) == grouping_id
        ]

    def list_components_by_drawing(self, drawing_id: UUID) -> list[ComponentView]:
        drawing = self.session.get(Drawing, drawing_id)
        if drawing is None:
            raise DrawingNotFoundError(str(drawing_id))
        components = self.session.execute(
            select(Component)
            .where(Component.drawing_id == drawing_id, Component.is_retired.is_(False))
            .order_by(Component.component_type, Component.identity_text)
        ).scalars()
        return [to_component_view(c, drawing) for c in components]

    def get_component_history(self, component_id: UUID) -> list[MilestoneEventRecord]:
        """Milestone events of a component in sequence order (audit trail)."""
        if self.session.get(Component, component_id) is None:
            raise ComponentNotFoundError(str(component_id))
        events = self.session.execute(
            select(MilestoneEvent)
            .where(MilestoneEvent.component_id == component_id)
            .order_by(MilestoneEvent.sequence)
        ).scalars()
        return [
            MilestoneEventRecord(
                event_id=e.id,
                component_id=e.component_id,
                sequence=e.sequence,
                milestone_name=e.milestone_name,
                action=e.action,
                previous_value=as_decimal(e.previous_value),
                new_value=as_decimal(e.new_value),
                delta_hours=as_decimal(e.delta_hours),
                category=e.category,
                weight=as_decimal(e.weight),
                actor_id=e.actor_id,
                recorded_at=ensure_utc(e.recorded_at),
                metadata=e.event_metadata,
            )
            for e in events
        ]

    def pending_review_component_ids(self, project_id: UUID) -> set[UUID]:
        """Components with at least one pending review item (blocked)."""
        rows = self.session.execute(
            select(ReviewItem.component_id)
            .where(
                ReviewItem.project_id == project_id,
                ReviewItem.status == ReviewStatus.PENDING.value,
            )
            .distinct()
        ).scalars()
        return set(rows)

    def list_review_items(
        self,
        project_id: UUID,
        status: ReviewStatus | str | None = ReviewStatus.PENDING,
    ) -> list[ReviewItemView]:
        stmt = select(ReviewItem).where(ReviewItem.project_id == project_id)
        if status is not None:
            stmt = stmt.where(ReviewItem.status == ReviewStatus(status).value)
        items = self.session.execute(stmt.order_by(ReviewItem.created_at, ReviewItem.id)).scalars()
        return [to_review_view(item) for item in items]
