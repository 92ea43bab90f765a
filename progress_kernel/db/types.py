"""
Module: progress_kernel.db.types
Responsibility: Annotated column types and the sanctioned rounding helpers for
    labor hours, weights, milestone values and percents.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats in progress arithmetic.  Every amount is a Decimal with an
      explicit column precision.
    - round_percent() and round_value() are the ONLY rounding functions for
      reported percents and milestone values.
    - Component percent complete is stored unrounded (ExactPercent), so it
      always equals the weighted sum of its milestone state.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric

# Labor hours and earned-value deltas
Hours = Annotated[Decimal, Numeric(20, 6)]

# Milestone weight (percent of total component value)
Weight = Annotated[Decimal, Numeric(7, 4)]

# Milestone value 0-100
MilestoneValue = Annotated[Decimal, Numeric(7, 2)]

# Reported percent 0-100 (aggregate averages)
Percent = Annotated[Decimal, Numeric(7, 2)]

# Component percent complete 0-100, unrounded.  Weight scale 4 + value scale 2
# + the division by 100 never exceed 8 places.
ExactPercent = Annotated[Decimal, Numeric(12, 8)]

PERCENT_DECIMAL_PLACES = 2
WEIGHT_DECIMAL_PLACES = 4
VALUE_DECIMAL_PLACES = 2
HOURS_DECIMAL_PLACES = 6
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _quantize(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=DEFAULT_ROUNDING)


def round_percent(value: Decimal) -> Decimal:
    """Round a percent to the reported precision (2 places, half-up)."""
    return _quantize(value, PERCENT_DECIMAL_PLACES)


def round_value(value: Decimal) -> Decimal:
    """Round a milestone value to the persisted precision (2 places, half-up)."""
    return _quantize(value, VALUE_DECIMAL_PLACES)


def round_hours(value: Decimal) -> Decimal:
    """Round labor hours to the persisted precision (6 places, half-up)."""
    return _quantize(value, HOURS_DECIMAL_PLACES)


def clamp_percent(value: Decimal) -> Decimal:
    """Clamp a percent into [0, 100]."""
    if value < ZERO:
        return ZERO
    if value > HUNDRED:
        return HUNDRED
    return value


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Return a timezone-aware UTC datetime.

    SQLite returns naive datetimes for DateTime(timezone=True) columns; the
    kernel only ever writes UTC, so a naive value is UTC by construction.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
