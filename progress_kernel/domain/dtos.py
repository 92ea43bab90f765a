"""
Data transfer objects returned across the engine boundary.

All DTOs are frozen dataclasses detached from any session, so callers can
hold them after the transaction that produced them has closed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from progress_kernel.domain.inheritance import ResolvedAttribute

# Delta report key for components whose dimension resolves to nothing
UNASSIGNED = "UNASSIGNED"


@dataclass(frozen=True)
class ComponentView:
    """A component with its grouping attributes resolved through its drawing."""

    component_id: UUID
    project_id: UUID
    component_type: str
    identity_key: dict[str, Any]
    identity_text: str
    milestones: dict[str, Decimal]
    percent_complete: Decimal
    budget_hours: Decimal
    drawing_id: UUID | None
    grouping: dict[str, ResolvedAttribute]
    is_retired: bool
    version: int
    last_event_sequence: int

    def resolved(self, attribute_name: str) -> Any:
        """Effective value of a grouping attribute (None when unassigned)."""
        return self.grouping[attribute_name].value

    @property
    def area_id(self) -> UUID | None:
        return self.resolved("area_id")

    @property
    def system_id(self) -> UUID | None:
        return self.resolved("system_id")

    @property
    def test_package_id(self) -> UUID | None:
        return self.resolved("test_package_id")


@dataclass(frozen=True)
class MilestoneUpdateResult:
    """Outcome of one recorded milestone update."""

    event_id: UUID
    component_id: UUID
    milestone_name: str
    previous_value: Decimal
    new_value: Decimal
    delta_hours: Decimal
    category: str
    action: str
    sequence: int
    percent_complete: Decimal
    milestones: dict[str, Decimal]
    review_item_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class MilestoneEventRecord:
    """Read-only view of one milestone event (audit trail)."""

    event_id: UUID
    component_id: UUID
    sequence: int
    milestone_name: str
    action: str
    previous_value: Decimal
    new_value: Decimal
    delta_hours: Decimal
    category: str
    weight: Decimal
    actor_id: UUID
    recorded_at: datetime
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class AggregationSnapshot:
    """A cached rollup with its staleness marker."""

    scope_kind: str
    scope_id: UUID
    project_id: UUID
    total_components: int
    completed_components: int
    average_percent: Decimal
    blocked_components: int
    budget_hours: Decimal
    earned_hours: Decimal
    last_activity_at: datetime | None
    refreshed_at: datetime

    def age(self, now: datetime) -> timedelta:
        """How old the snapshot is relative to ``now``."""
        return now - self.refreshed_at


@dataclass(frozen=True)
class CategoryDelta:
    """
    Earned-value delta of one category for one dimension value.

    percent is None (not applicable) when the category budget is zero.
    """

    category: str
    delta_hours: Decimal
    budget_hours: Decimal
    percent: Decimal | None


@dataclass(frozen=True)
class DimensionDelta:
    """
    All categories plus the total for one dimension value.

    Category percents normalize against their own budgets and are not
    expected to equal total_percent.
    """

    dimension_value: UUID | str
    categories: dict[str, CategoryDelta]
    total_delta_hours: Decimal
    total_budget_hours: Decimal
    total_percent: Decimal | None
    components_with_activity: int


@dataclass(frozen=True)
class DeltaReport:
    project_id: UUID
    dimension: str
    start: datetime
    end: datetime
    rows: dict[UUID | str, DimensionDelta] = field(default_factory=dict)

    def row(self, dimension_value: UUID | str) -> DimensionDelta | None:
        return self.rows.get(dimension_value)


@dataclass(frozen=True)
class TemplateValidationResult:
    valid: bool
    issues: tuple[str, ...] = ()


@dataclass(frozen=True)
class TemplateUpdateResult:
    """Outcome of a saved template override."""

    template_id: UUID
    version: int
    previous_template_id: UUID | None
    weights: dict[str, Decimal]
    recompute_job_id: UUID | None = None


@dataclass(frozen=True)
class ReviewItemView:
    review_id: UUID
    component_id: UUID
    review_type: str
    status: str
    payload: dict[str, Any]
    created_at: datetime | None
    resolved_at: datetime | None = None
    resolution_note: str | None = None
