"""ORM models for the progress kernel."""

from progress_kernel.models.aggregation import AggregationRecord, AggregationScope
from progress_kernel.models.component import Component
from progress_kernel.models.drawing import Drawing
from progress_kernel.models.grouping import GroupingEntity, GroupingKind
from progress_kernel.models.milestone_event import MilestoneEvent
from progress_kernel.models.project import Project
from progress_kernel.models.review import ReviewItem, ReviewStatus, ReviewType
from progress_kernel.models.template import ProgressTemplate, TemplateChange

__all__ = [
    "AggregationRecord",
    "AggregationScope",
    "Component",
    "Drawing",
    "GroupingEntity",
    "GroupingKind",
    "MilestoneEvent",
    "Project",
    "ProgressTemplate",
    "ReviewItem",
    "ReviewStatus",
    "ReviewType",
    "TemplateChange",
]
