"""
Write-boundary validation for milestone values and identity keys.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Partial milestones accept any finite number in [0, 100].
    - Discrete milestones accept exactly 0 or 100 (True/False as aliases).
    - Stored values carry 2 decimal places.
    - Identity keys carry every field their type requires, non-blank.
"""

from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation

from progress_kernel.db.types import HUNDRED, ZERO, round_value
from progress_kernel.domain.templates import MilestoneSpec
from progress_kernel.exceptions import InvalidIdentityKeyError, InvalidMilestoneValue


def normalize_milestone_value(spec: MilestoneSpec, raw: object) -> Decimal:
    """
    Convert an incoming milestone value to its stored Decimal form.

    Raises:
        InvalidMilestoneValue: value not numeric, not finite, out of range,
            or not 0/100 for a discrete milestone.
    """
    if isinstance(raw, bool):
        if spec.is_partial:
            raise InvalidMilestoneValue(
                spec.name, raw, "partial milestones take a number from 0 to 100"
            )
        return HUNDRED if raw else ZERO

    if raw is None or isinstance(raw, (list, tuple, dict, set)):
        raise InvalidMilestoneValue(spec.name, raw, "value must be a number")

    try:
        value = Decimal(str(raw).strip()) if isinstance(raw, str) else Decimal(str(raw))
    except InvalidOperation:
        raise InvalidMilestoneValue(spec.name, raw, "value must be a number") from None

    if not value.is_finite():
        raise InvalidMilestoneValue(spec.name, raw, "value must be finite")

    if value < ZERO or value > HUNDRED:
        raise InvalidMilestoneValue(spec.name, raw, "value must be between 0 and 100")

    if not spec.is_partial and value not in (ZERO, HUNDRED):
        raise InvalidMilestoneValue(
            spec.name, raw, "discrete milestones take exactly 0 or 100"
        )

    return round_value(value)


def identity_text(identity_key: Mapping[str, object], fields: Sequence[str]) -> str:
    """Canonical text form of an identity key over the given fields."""
    return "|".join(f"{name}={str(identity_key[name]).strip()}" for name in fields)


def validate_identity_key(
    component_type: str,
    identity_key: Mapping[str, object],
    required_fields: Sequence[str],
) -> str:
    """
    Check an identity key and return its canonical text.

    Raises:
        InvalidIdentityKeyError: a required field is missing or blank.
    """
    missing = [
        name
        for name in required_fields
        if identity_key.get(name) is None or str(identity_key.get(name)).strip() == ""
    ]
    if missing:
        raise InvalidIdentityKeyError(component_type, missing)
    return identity_text(identity_key, required_fields)
