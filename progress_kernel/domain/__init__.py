"""Pure domain core: templates, percent and earned-value math, inheritance."""

from progress_kernel.domain.categories import MilestoneCategory
from progress_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from progress_kernel.domain.earned_value import MilestoneAction, classify_action, compute_delta
from progress_kernel.domain.inheritance import (
    GROUPING_ATTRIBUTES,
    AttributeSource,
    ResolvedAttribute,
    resolve_attribute,
    resolve_grouping,
)
from progress_kernel.domain.percent import compute_percent, earned_hours, milestone_contribution
from progress_kernel.domain.templates import (
    MilestoneSpec,
    ResolvedTemplate,
    validate_template_definition,
    validate_template_override,
)

__all__ = [
    "AttributeSource",
    "Clock",
    "DeterministicClock",
    "GROUPING_ATTRIBUTES",
    "MilestoneAction",
    "MilestoneCategory",
    "MilestoneSpec",
    "ResolvedAttribute",
    "ResolvedTemplate",
    "SystemClock",
    "classify_action",
    "compute_delta",
    "compute_percent",
    "earned_hours",
    "milestone_contribution",
    "resolve_attribute",
    "resolve_grouping",
    "validate_template_definition",
    "validate_template_override",
]
