"""
Earned-value delta calculation.

Responsibility:
    Labor-hour value of a single milestone change, computed once at write
    time and stored on the event.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - delta = earned(new percent) - earned(previous percent), both percents
      taken under the template in force at write time.  For one milestone
      change this equals budget x weight% x value-change%.
    - Each earned value is rounded half-up to 6 places before subtracting,
      so the deltas of any update sequence under one template telescope to
      exactly the earned hours of the final state.
    - A rollback yields a negative delta; A->B followed by B->A sums to
      exactly zero.
"""

from decimal import Decimal
from enum import Enum

from progress_kernel.db.types import HUNDRED
from progress_kernel.domain.percent import earned_hours


class MilestoneAction(str, Enum):
    """Classification of a milestone change."""

    COMPLETE = "complete"
    ROLLBACK = "rollback"
    UPDATE = "update"


def compute_delta(budget_hours: Decimal, previous_percent: Decimal, new_percent: Decimal) -> Decimal:
    """Earned labor hours of moving a component from previous_percent to new_percent."""
    return earned_hours(budget_hours, new_percent) - earned_hours(budget_hours, previous_percent)


def classify_action(previous_value: Decimal, new_value: Decimal) -> MilestoneAction:
    """complete (reaches 100 from below), rollback (decrease) or update."""
    if new_value < previous_value:
        return MilestoneAction.ROLLBACK
    if new_value == HUNDRED and previous_value < HUNDRED:
        return MilestoneAction.COMPLETE
    return MilestoneAction.UPDATE
