"""
ComponentService -- component intake and non-milestone lifecycle writes.

Responsibility:
    Creates components (identity validated, all milestones at 0), moves them
    between drawings, sets or clears grouping overrides, adjusts budgets and
    soft-retires them.  Milestone state is never touched here; that belongs
    to MilestoneRecorder.

Architecture position:
    Kernel > Services.  Flush-only.

Invariants enforced:
    - Identity key carries every field required for its type and is unique
      per (project, type) among non-retired components.
    - Components are soft-retired, never deleted.
    - Every write bumps the component's version counter.

Failure modes:
    - InvalidIdentityKeyError, DuplicateComponentError, InvalidBudgetError.
    - ComponentNotFoundError, ComponentRetiredError.
    - ConfigurationError: no template for the type (intake is blocked).
    - ConcurrentModificationConflict: stale row version at flush.
"""

from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from progress_kernel.db.types import ZERO, round_hours
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.domain.inheritance import GROUPING_ATTRIBUTES
from progress_kernel.domain.percent import initial_state
from progress_kernel.domain.validation import validate_identity_key
from progress_kernel.exceptions import (
    ComponentNotFoundError,
    ComponentRetiredError,
    ConcurrentModificationConflict,
    DrawingNotFoundError,
    DuplicateComponentError,
    InvalidBudgetError,
    InvalidIdentityKeyError,
)
from progress_kernel.logging_config import get_logger
from progress_kernel.models.component import Component
from progress_kernel.models.review import ReviewType
from progress_kernel.selectors.template_selector import TemplateResolver
from progress_kernel.services.base import BaseService
from progress_kernel.services.review_service import ReviewService
from progress_kernel.services.structure_service import StructureService

logger = get_logger("services.component")


def parse_budget(value: Any) -> Decimal:
    """Validate a labor-hour budget and round it to column precision."""
    if isinstance(value, bool):
        raise InvalidBudgetError(value, "budget must be a number")
    try:
        budget = Decimal(str(value))
    except InvalidOperation:
        raise InvalidBudgetError(value, "budget must be a number") from None
    if not budget.is_finite():
        raise InvalidBudgetError(value, "budget must be finite")
    if budget < ZERO:
        raise InvalidBudgetError(value, "budget must not be negative")
    return round_hours(budget)


class ComponentService(BaseService[Component]):
    """Component intake and lifecycle."""

    def __init__(
        self,
        session,
        identity_schemas: Mapping[str, Sequence[str]],
        clock: Clock | None = None,
        resolver: TemplateResolver | None = None,
        flag_drawing_changes: bool = True,
    ):
        super().__init__(session)
        self._identity_schemas = identity_schemas
        self._clock = clock or SystemClock()
        self.resolver = resolver or TemplateResolver(session)
        self._structure = StructureService(session)
        self._reviews = ReviewService(session, self._clock)
        self.flag_drawing_changes = flag_drawing_changes

    def _get_writable(self, component_id: UUID) -> Component:
        component = self.session.get(Component, component_id)
        if component is None:
            raise ComponentNotFoundError(str(component_id))
        if component.is_retired:
            raise ComponentRetiredError(str(component_id))
        return component

    def _flush(self, component_id: UUID) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModificationConflict(
                "Component", str(component_id), "component row changed concurrently"
            ) from exc

    def _find_active_duplicate(
        self, project_id: UUID, component_type: str, identity: str
    ) -> Component | None:
        return self.session.execute(
            select(Component).where(
                Component.project_id == project_id,
                Component.component_type == component_type,
                Component.identity_text == identity,
                Component.is_retired.is_(False),
            )
        ).scalars().first()

    def create_component(
        self,
        project_id: UUID,
        component_type: str,
        identity_key: Mapping[str, Any],
        budget_hours: Any,
        actor_id: UUID,
        drawing_id: UUID | None = None,
        overrides: Mapping[str, UUID | None] | None = None,
    ) -> Component:
        """
        Intake a component with every milestone at 0.

        Args:
            overrides: Optional explicit grouping attributes
                ({"area_id": ..., "system_id": ..., "test_package_id": ...}).
        """
        self._structure.require_project(project_id)

        fields = self._identity_schemas.get(component_type)
        if fields is None:
            raise InvalidIdentityKeyError(component_type, ["<unknown component type>"])
        identity = validate_identity_key(component_type, identity_key, fields)

        existing = self._find_active_duplicate(project_id, component_type, identity)
        if existing is not None:
            raise DuplicateComponentError(component_type, identity, str(existing.id))

        template = self.resolver.resolve(component_type, project_id)
        budget = parse_budget(budget_hours)

        if drawing_id is not None:
            drawing = self._structure.require_drawing(drawing_id)
            if drawing.project_id != project_id:
                raise DrawingNotFoundError(str(drawing_id))

        grouping = dict(overrides or {})
        for attribute, value in grouping.items():
            self._structure.check_grouping_value(project_id, attribute, value)

        component = Component(
            project_id=project_id,
            component_type=component_type,
            identity_key=dict(identity_key),
            identity_text=identity,
            milestones=initial_state(template),
            percent_complete=ZERO,
            budget_hours=budget,
            drawing_id=drawing_id,
            is_retired=False,
            last_event_sequence=0,
            created_by_id=actor_id,
            **{name: grouping.get(name) for name in GROUPING_ATTRIBUTES},
        )
        self.session.add(component)
        self.session.flush()

        logger.info(
            "component_created",
            extra={
                "component_id": str(component.id),
                "component_type": component_type,
                "identity": identity,
                "budget_hours": str(budget),
            },
        )
        return component

    def assign_drawing(self, component_id: UUID, drawing_id: UUID | None, actor_id: UUID) -> Component:
        """
        Move a component to another drawing (or detach it).

        A move away from an existing drawing opens a drawing_change review
        item when flag_drawing_changes is set.
        """
        component = self._get_writable(component_id)
        if drawing_id is not None:
            drawing = self._structure.require_drawing(drawing_id)
            if drawing.project_id != component.project_id:
                raise DrawingNotFoundError(str(drawing_id))

        previous = component.drawing_id
        if previous == drawing_id:
            return component

        component.drawing_id = drawing_id
        component.updated_by_id = actor_id
        self._flush(component.id)

        if self.flag_drawing_changes and previous is not None:
            self._reviews.flag(
                component,
                ReviewType.DRAWING_CHANGE,
                {
                    "previous_drawing_id": str(previous),
                    "drawing_id": str(drawing_id) if drawing_id else None,
                },
                actor_id,
            )

        logger.info(
            "component_drawing_assigned",
            extra={
                "component_id": str(component.id),
                "previous_drawing_id": str(previous) if previous else None,
                "drawing_id": str(drawing_id) if drawing_id else None,
            },
        )
        return component

    def set_grouping_override(
        self,
        component_id: UUID,
        attribute: str,
        value: UUID | None,
        actor_id: UUID,
    ) -> Component:
        """Set an explicit grouping value; None clears it so inheritance resumes."""
        component = self._get_writable(component_id)
        self._structure.check_grouping_value(component.project_id, attribute, value)

        setattr(component, attribute, value)
        component.updated_by_id = actor_id
        self._flush(component.id)

        logger.info(
            "component_grouping_override_set",
            extra={
                "component_id": str(component.id),
                "attribute": attribute,
                "value": str(value) if value else None,
            },
        )
        return component

    def set_budget(self, component_id: UUID, budget_hours: Any, actor_id: UUID) -> Component:
        """
        Change the labor-hour budget.

        Applies prospectively: deltas already stored on events keep the
        budget that was in force when they were recorded.
        """
        component = self._get_writable(component_id)
        budget = parse_budget(budget_hours)
        previous = component.budget_hours
        component.budget_hours = budget
        component.updated_by_id = actor_id
        self._flush(component.id)

        logger.info(
            "component_budget_changed",
            extra={
                "component_id": str(component.id),
                "previous_budget_hours": str(previous),
                "budget_hours": str(budget),
            },
        )
        return component

    def retire_component(self, component_id: UUID, reason: str, actor_id: UUID) -> Component:
        """Soft-retire a component; it drops out of listings, caches and reports."""
        component = self._get_writable(component_id)
        component.is_retired = True
        component.retired_at = self._clock.now()
        component.retire_reason = reason
        component.updated_by_id = actor_id
        self._flush(component.id)

        logger.info(
            "component_retired",
            extra={"component_id": str(component.id), "reason": reason},
        )
        return component
