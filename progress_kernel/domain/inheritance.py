"""
Metadata inheritance resolution.

Responsibility:
    The one rule for a component's effective grouping attribute:
    component value if present, else drawing value, else unassigned.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Works on any object
    exposing the grouping attributes (ORM rows or DTOs).

Invariants enforced:
    - The component override always wins; precedence is not configurable.
    - Resolution is idempotent: the same inputs always give the same result.
    - Listings, the aggregation cache and the delta report all call
      resolve_attribute(); none of them reads a grouping column directly.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from progress_kernel.exceptions import InvalidGroupingAttributeError

GROUPING_ATTRIBUTES: tuple[str, ...] = ("area_id", "system_id", "test_package_id")

# Grouping entity kind -> component/drawing attribute identifying membership
KIND_TO_ATTRIBUTE: dict[str, str] = {
    "area": "area_id",
    "system": "system_id",
    "test_package": "test_package_id",
}

ATTRIBUTE_TO_KIND: dict[str, str] = {v: k for k, v in KIND_TO_ATTRIBUTE.items()}


class AttributeSource(str, Enum):
    ASSIGNED = "assigned"
    INHERITED = "inherited"
    NONE = "none"


@dataclass(frozen=True)
class ResolvedAttribute:
    """Effective value of a grouping attribute and where it came from."""

    attribute: str
    value: Any
    source: AttributeSource

    @property
    def is_assigned(self) -> bool:
        return self.value is not None


def check_grouping_attribute(attribute_name: str) -> str:
    """Return attribute_name, or raise if it is not inheritable."""
    if attribute_name not in GROUPING_ATTRIBUTES:
        raise InvalidGroupingAttributeError(attribute_name, GROUPING_ATTRIBUTES)
    return attribute_name


def resolve_attribute(component: Any, drawing: Any | None, attribute_name: str) -> ResolvedAttribute:
    """
    Resolve one grouping attribute.

    Args:
        component: Object with the grouping attributes (override values).
        drawing: Parent drawing, or None when the component has none.
        attribute_name: One of GROUPING_ATTRIBUTES.

    Raises:
        InvalidGroupingAttributeError: attribute_name is not inheritable.
    """
    check_grouping_attribute(attribute_name)

    own = getattr(component, attribute_name, None)
    if own is not None:
        return ResolvedAttribute(attribute_name, own, AttributeSource.ASSIGNED)

    if drawing is not None:
        inherited = getattr(drawing, attribute_name, None)
        if inherited is not None:
            return ResolvedAttribute(attribute_name, inherited, AttributeSource.INHERITED)

    return ResolvedAttribute(attribute_name, None, AttributeSource.NONE)


def resolve_grouping(component: Any, drawing: Any | None) -> dict[str, ResolvedAttribute]:
    """Resolve every grouping attribute of a component."""
    return {
        name: resolve_attribute(component, drawing, name)
        for name in GROUPING_ATTRIBUTES
    }
