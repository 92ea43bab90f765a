"""
Module: progress_kernel.selectors.delta_selector
Responsibility: The delta reporting engine.  Sums the stored earned-value
    deltas of the milestone event log over a time window, grouped by a
    resolved dimension and by category, and normalizes them against
    per-category budgets.
Architecture position: Kernel > Selectors.  Reads only the event log and the
    component/drawing rows; independent of aggregation cache freshness.

Invariants enforced:
    - Deltas are the values stored on events, never re-derived from the
      current milestone state; intermediate rollbacks stay visible.
    - Dimension membership goes through iter_resolved_components(), the same
      resolver used by listings and the aggregation cache.
    - Category budget = sum over members of budget x category weight / 100
      under each member's currently resolved template; independent of the
      window.
    - Category percent = category delta / category budget x 100 and total
      percent = total delta / total budget x 100.  They are NOT expected to
      agree; each normalizes against its own budget.
    - For every dimension value, the category deltas sum to the total delta.
    - A zero budget yields None (not applicable), never a division error.
    - A window with no events yields all-zero deltas.

Failure modes:
    - InvalidDimensionError, InvalidReportWindowError.
    - ConfigurationError if a member's template cannot be resolved.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from progress_kernel.db.types import HUNDRED, ZERO, ensure_utc, round_percent
from progress_kernel.domain.categories import MilestoneCategory
from progress_kernel.domain.dtos import UNASSIGNED, CategoryDelta, ComponentView, DeltaReport, DimensionDelta
from progress_kernel.domain.percent import as_decimal
from progress_kernel.exceptions import InvalidDimensionError, InvalidReportWindowError
from progress_kernel.logging_config import get_logger
from progress_kernel.models.milestone_event import MilestoneEvent
from progress_kernel.selectors.base import BaseSelector
from progress_kernel.selectors.component_selector import iter_resolved_components
from progress_kernel.selectors.template_selector import TemplateResolver

logger = get_logger("selectors.delta")

# Report dimension -> resolved attribute (None = direct drawing reference)
DIMENSIONS: dict[str, str | None] = {
    "area": "area_id",
    "system": "system_id",
    "test_package": "test_package_id",
    "drawing": None,
}


def percent_of(part: Decimal, whole: Decimal) -> Decimal | None:
    """part / whole x 100 rounded to 2 places; None when whole is zero."""
    if whole == ZERO:
        return None
    return round_percent(part / whole * HUNDRED)


def dimension_key(view: ComponentView, dimension: str) -> UUID | str:
    attribute = DIMENSIONS[dimension]
    value = view.drawing_id if attribute is None else view.resolved(attribute)
    return UNASSIGNED if value is None else value


class DeltaSelector(BaseSelector[MilestoneEvent]):
    """Time-windowed earned-value delta reports."""

    def __init__(self, session, resolver: TemplateResolver | None = None):
        super().__init__(session)
        self.resolver = resolver or TemplateResolver(session)

    def get_delta(
        self,
        project_id: UUID,
        dimension: str,
        start: datetime,
        end: datetime,
    ) -> DeltaReport:
        """
        Per-category and total deltas for every value of a dimension.

        The window is half-open: start <= recorded_at < end.
        """
        if dimension not in DIMENSIONS:
            raise InvalidDimensionError(dimension, tuple(DIMENSIONS))
        start = ensure_utc(start)
        end = ensure_utc(end)
        if start >= end:
            raise InvalidReportWindowError(start.isoformat(), end.isoformat())

        categories = MilestoneCategory.values()
        keys: dict[UUID, UUID | str] = {}
        category_budget: dict[UUID | str, dict[str, Decimal]] = defaultdict(
            lambda: {c: ZERO for c in categories}
        )
        total_budget: dict[UUID | str, Decimal] = defaultdict(lambda: ZERO)

        for view in iter_resolved_components(self.session, project_id):
            key = dimension_key(view, dimension)
            keys[view.component_id] = key
            template = self.resolver.resolve(view.component_type, project_id)
            budget = view.budget_hours
            for category, weight in template.category_weights().items():
                category_budget[key][category.value] += budget * weight / HUNDRED
            total_budget[key] += budget

        category_delta: dict[UUID | str, dict[str, Decimal]] = defaultdict(
            lambda: {c: ZERO for c in categories}
        )
        total_delta: dict[UUID | str, Decimal] = defaultdict(lambda: ZERO)
        active: dict[UUID | str, set[UUID]] = defaultdict(set)

        events = self.session.execute(
            select(MilestoneEvent.component_id, MilestoneEvent.category, MilestoneEvent.delta_hours)
            .where(
                MilestoneEvent.project_id == project_id,
                MilestoneEvent.recorded_at >= start,
                MilestoneEvent.recorded_at < end,
            )
        )
        event_count = 0
        for component_id, category, delta in events:
            key = keys.get(component_id)
            if key is None:
                # Retired component
                continue
            delta = as_decimal(delta)
            category_delta[key][category] += delta
            total_delta[key] += delta
            active[key].add(component_id)
            event_count += 1

        rows: dict[UUID | str, DimensionDelta] = {}
        for key in category_budget:
            rows[key] = DimensionDelta(
                dimension_value=key,
                categories={
                    c: CategoryDelta(
                        category=c,
                        delta_hours=category_delta[key][c],
                        budget_hours=category_budget[key][c],
                        percent=percent_of(category_delta[key][c], category_budget[key][c]),
                    )
                    for c in categories
                },
                total_delta_hours=total_delta[key],
                total_budget_hours=total_budget[key],
                total_percent=percent_of(total_delta[key], total_budget[key]),
                components_with_activity=len(active[key]),
            )

        logger.info(
            "delta_report_built",
            extra={
                "project_id": str(project_id),
                "dimension": dimension,
                "window_start": start,
                "window_end": end,
                "row_count": len(rows),
                "event_count": event_count,
            },
        )
        return DeltaReport(project_id=project_id, dimension=dimension, start=start, end=end, rows=rows)
