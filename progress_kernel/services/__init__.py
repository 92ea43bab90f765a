"""Kernel write services.  All are flush-only; callers own transactions."""

from progress_kernel.services.component_lock import ComponentLockRegistry
from progress_kernel.services.component_service import ComponentService
from progress_kernel.services.milestone_recorder import MilestoneRecorder
from progress_kernel.services.review_service import ReviewService
from progress_kernel.services.structure_service import StructureService
from progress_kernel.services.template_service import TemplateService

__all__ = [
    "ComponentLockRegistry",
    "ComponentService",
    "MilestoneRecorder",
    "ReviewService",
    "StructureService",
    "TemplateService",
]
