"""Read-only selectors returning detached DTOs."""

from progress_kernel.selectors.aggregation_selector import AggregationSelector
from progress_kernel.selectors.component_selector import ComponentSelector, iter_resolved_components
from progress_kernel.selectors.delta_selector import DIMENSIONS, DeltaSelector
from progress_kernel.selectors.template_selector import TemplateResolver

__all__ = [
    "AggregationSelector",
    "ComponentSelector",
    "DIMENSIONS",
    "DeltaSelector",
    "TemplateResolver",
    "iter_resolved_components",
]
