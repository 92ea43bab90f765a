"""
Percent-complete calculation.

Responsibility:
    Fold a component's milestone state into a completion percentage under a
    resolved template.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - percent == sum(contribution) over the template, clamped to [0, 100]
      and never rounded.  With weights of at most 4 places and values of 2
      the sum is exact at 8 places, the ExactPercent column scale.
    - earned hours = budget x percent / 100, rounded half-up to 6 places.
    - A discrete milestone contributes its weight only at exactly 100.
    - A partial milestone contributes weight * value / 100.
    - A discrete milestone stored strictly between 0 and 100 is an anomaly
      and contributes nothing (see find_discrete_anomalies).
"""

from collections.abc import Mapping
from decimal import Decimal

from progress_kernel.db.types import HUNDRED, ZERO, clamp_percent, round_hours
from progress_kernel.domain.templates import MilestoneSpec, ResolvedTemplate


def as_decimal(value: object) -> Decimal:
    """Read a stored milestone value (int/float/str/Decimal) as Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return HUNDRED if value else ZERO
    return Decimal(str(value))


def milestone_contribution(spec: MilestoneSpec, value: Decimal) -> Decimal:
    """Percentage points a milestone adds to the component's completion."""
    if spec.is_partial:
        return spec.weight * value / HUNDRED
    if value == HUNDRED:
        return spec.weight
    return ZERO


def compute_percent(state: Mapping[str, object], template: ResolvedTemplate) -> Decimal:
    """
    Completion percentage of a milestone state.

    Milestones in the state that the template does not know are ignored;
    template milestones missing from the state count as 0.
    """
    total = ZERO
    for spec in template.milestones:
        total += milestone_contribution(spec, as_decimal(state.get(spec.name)))
    return clamp_percent(total)


def find_discrete_anomalies(state: Mapping[str, object], template: ResolvedTemplate) -> list[str]:
    """Names of discrete milestones stored strictly between 0 and 100."""
    anomalies = []
    for spec in template.milestones:
        if spec.is_partial:
            continue
        value = as_decimal(state.get(spec.name))
        if ZERO < value < HUNDRED:
            anomalies.append(spec.name)
    return anomalies


def initial_state(template: ResolvedTemplate) -> dict[str, int]:
    """Milestone state of a freshly created component: every milestone at 0."""
    return {name: 0 for name in template.names}


def earned_hours(budget_hours: Decimal, percent: Decimal) -> Decimal:
    return round_hours(budget_hours * percent / HUNDRED)
