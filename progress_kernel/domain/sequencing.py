"""Out-of-sequence detection for milestone completion."""

from collections.abc import Mapping
from decimal import Decimal

from progress_kernel.db.types import HUNDRED, ZERO
from progress_kernel.domain.percent import as_decimal
from progress_kernel.domain.templates import ResolvedTemplate


def find_missing_prerequisites(
    template: ResolvedTemplate,
    state: Mapping[str, object],
    milestone_name: str,
    new_value: Decimal,
) -> list[str]:
    """
    Earlier-ordered milestones still at 0 when ``milestone_name`` reaches 100.

    Returns an empty list unless new_value is 100.
    """
    if new_value != HUNDRED:
        return []
    target = template.milestone(milestone_name)
    if target is None:
        return []
    return [
        spec.name
        for spec in template.milestones
        if spec.order < target.order and as_decimal(state.get(spec.name)) == ZERO
    ]
