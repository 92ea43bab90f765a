"""
MilestoneRecorder -- the only writer of component milestone state.

Responsibility:
    Applies one milestone change to a component: validates the value,
    computes the earned-value delta, folds the new state into the component
    row (state + percent complete) and appends the immutable event.

Architecture position:
    Kernel > Services.  Flush-only; ProgressEngine wraps each call in the
    component's lock and one transaction.

Invariants enforced:
    - Component update and event append are flushed together; the caller's
      rollback undoes both.
    - previous_value is read from the component row inside the caller's
      lock (and, on PostgreSQL, under SELECT ... FOR UPDATE), so no delta
      is computed against a stale value.
    - Event sequence = component.last_event_sequence + 1; the unique
      (component_id, sequence) constraint rejects a lost-update race that
      slipped past the locks.
    - delta, weight and category are copied from the template in force at
      write time.
    - Discrete milestones stored strictly between 0 and 100 contribute
      nothing and are logged as ``discrete_milestone_anomaly``.

Failure modes:
    - ComponentNotFoundError / ComponentRetiredError.
    - ConfigurationError: no valid template for the component's type.
    - InvalidMilestoneValue: unknown milestone or value out of range; the
      component is left unchanged.
    - ConcurrentModificationConflict: stale row version or duplicate event
      sequence detected at flush.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from progress_kernel.db.engine import is_postgres
from progress_kernel.db.types import ZERO
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.domain.dtos import MilestoneUpdateResult
from progress_kernel.domain.earned_value import MilestoneAction, classify_action, compute_delta
from progress_kernel.domain.percent import as_decimal, compute_percent, find_discrete_anomalies
from progress_kernel.domain.sequencing import find_missing_prerequisites
from progress_kernel.domain.templates import ResolvedTemplate
from progress_kernel.domain.validation import normalize_milestone_value
from progress_kernel.exceptions import (
    ComponentNotFoundError,
    ComponentRetiredError,
    ConcurrentModificationConflict,
    InvalidMilestoneValue,
)
from progress_kernel.logging_config import get_logger
from progress_kernel.models.component import Component
from progress_kernel.models.milestone_event import MilestoneEvent
from progress_kernel.models.review import ReviewType
from progress_kernel.selectors.template_selector import TemplateResolver
from progress_kernel.services.base import BaseService
from progress_kernel.services.review_service import ReviewService

logger = get_logger("services.milestone_recorder")


def to_stored(value: Decimal) -> int | float:
    """JSON form of a milestone value: int when integral."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def read_state(component: Component) -> dict[str, Decimal]:
    return {name: as_decimal(value) for name, value in (component.milestones or {}).items()}


class MilestoneRecorder(BaseService[Component]):
    """Records milestone updates against components."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        resolver: TemplateResolver | None = None,
        flag_out_of_sequence: bool = True,
        flag_rollbacks: bool = False,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.resolver = resolver or TemplateResolver(session)
        self._reviews = ReviewService(session, self._clock)
        self.flag_out_of_sequence = flag_out_of_sequence
        self.flag_rollbacks = flag_rollbacks

    def load_for_update(self, component_id: UUID) -> Component:
        """
        Load a writable component, row-locked on PostgreSQL.

        Raises:
            ComponentNotFoundError: unknown id.
            ComponentRetiredError: component is retired.
        """
        stmt = select(Component).where(Component.id == component_id)
        if is_postgres(self.session):
            stmt = stmt.with_for_update()
        component = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if component is None:
            raise ComponentNotFoundError(str(component_id))
        if component.is_retired:
            raise ComponentRetiredError(str(component_id))
        return component

    def _log_anomalies(self, component: Component, state: dict, template: ResolvedTemplate) -> None:
        for name in find_discrete_anomalies(state, template):
            logger.warning(
                "discrete_milestone_anomaly",
                extra={
                    "component_id": str(component.id),
                    "milestone": name,
                    "stored_value": str(state.get(name)),
                },
            )

    def _flush(self, component_id: UUID) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModificationConflict(
                "Component", str(component_id), "component row changed concurrently"
            ) from exc
        except IntegrityError as exc:
            raise ConcurrentModificationConflict(
                "Component", str(component_id), "event sequence already taken"
            ) from exc

    def record_milestone_update(
        self,
        component_id: UUID,
        milestone_name: str,
        new_value: Any,
        actor_id: UUID,
        metadata: dict[str, Any] | None = None,
    ) -> MilestoneUpdateResult:
        """
        Apply one milestone change and append its event.

        Preconditions:
            - The caller holds the component's lock and owns the transaction.

        Returns:
            MilestoneUpdateResult with the event id, delta, new percent and
            new milestone state.
        """
        component = self.load_for_update(component_id)
        template = self.resolver.resolve(component.component_type, component.project_id)

        spec = template.milestone(milestone_name)
        if spec is None:
            raise InvalidMilestoneValue(
                milestone_name,
                new_value,
                f"not a milestone of {component.component_type}",
            )
        value = normalize_milestone_value(spec, new_value)

        state = read_state(component)
        previous = state.get(milestone_name, ZERO)
        previous_percent = compute_percent(state, template)
        action = classify_action(previous, value)

        prerequisites = []
        if self.flag_out_of_sequence:
            prerequisites = find_missing_prerequisites(template, state, milestone_name, value)

        state[milestone_name] = value
        percent = compute_percent(state, template)
        delta = compute_delta(component.budget_hours, previous_percent, percent)
        self._log_anomalies(component, state, template)

        sequence = component.last_event_sequence + 1
        component.milestones = {name: to_stored(v) for name, v in state.items()}
        component.percent_complete = percent
        component.last_event_sequence = sequence
        component.updated_by_id = actor_id

        event = MilestoneEvent(
            component_id=component.id,
            project_id=component.project_id,
            sequence=sequence,
            milestone_name=milestone_name,
            action=action.value,
            previous_value=previous,
            new_value=value,
            delta_hours=delta,
            category=spec.category.value,
            weight=spec.weight,
            template_id=template.template_id,
            actor_id=actor_id,
            recorded_at=self._clock.now(),
            event_metadata=metadata,
        )
        self.session.add(event)
        self._flush(component.id)

        review_ids = []
        if prerequisites:
            item = self._reviews.flag(
                component,
                ReviewType.OUT_OF_SEQUENCE,
                {"milestone": milestone_name, "missing": prerequisites, "event_id": str(event.id)},
                actor_id,
            )
            review_ids.append(item.id)
        if self.flag_rollbacks and action == MilestoneAction.ROLLBACK:
            item = self._reviews.flag(
                component,
                ReviewType.ROLLBACK,
                {
                    "milestone": milestone_name,
                    "previous_value": str(previous),
                    "new_value": str(value),
                    "event_id": str(event.id),
                    "reason": (metadata or {}).get("reason"),
                },
                actor_id,
            )
            review_ids.append(item.id)

        logger.info(
            "milestone_recorded",
            extra={
                "component_id": str(component.id),
                "event_id": str(event.id),
                "milestone": milestone_name,
                "action": action.value,
                "previous_value": str(previous),
                "new_value": str(value),
                "delta_hours": str(delta),
                "percent_complete": str(percent),
                "sequence": sequence,
            },
        )

        return MilestoneUpdateResult(
            event_id=event.id,
            component_id=component.id,
            milestone_name=milestone_name,
            previous_value=previous,
            new_value=value,
            delta_hours=delta,
            category=spec.category.value,
            action=action.value,
            sequence=sequence,
            percent_complete=percent,
            milestones=dict(state),
            review_item_ids=tuple(review_ids),
        )

    def recompute_percent(
        self,
        component: Component,
        actor_id: UUID,
        template: ResolvedTemplate | None = None,
    ) -> bool:
        """
        Re-derive percent_complete under the current template.

        Used after template changes; milestone state and the event log are
        untouched.  Returns True when the stored percent changed.
        """
        template = template or self.resolver.resolve(component.component_type, component.project_id)
        state = read_state(component)
        self._log_anomalies(component, state, template)
        percent = compute_percent(state, template)
        if percent == component.percent_complete:
            return False
        previous = component.percent_complete
        component.percent_complete = percent
        component.updated_by_id = actor_id
        self._flush(component.id)
        logger.info(
            "component_percent_recomputed",
            extra={
                "component_id": str(component.id),
                "previous_percent": str(previous),
                "percent_complete": str(percent),
            },
        )
        return True
