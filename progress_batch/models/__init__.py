"""
progress_batch.models -- ORM models for background job persistence.

Architecture: progress_batch/models. Imports from progress_kernel.db only.
"""

from progress_batch.models.recompute import RecomputeJobModel

__all__ = [
    "RecomputeJobModel",
]
