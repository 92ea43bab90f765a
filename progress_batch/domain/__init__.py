"""
progress_batch.domain -- Pure types for background work.

ZERO I/O.  All types are frozen dataclasses.
"""

from progress_batch.domain.types import (
    RecomputeJob,
    RecomputeJobStatus,
    RecomputeRunResult,
    RefreshSummary,
)

__all__ = [
    "RecomputeJob",
    "RecomputeJobStatus",
    "RecomputeRunResult",
    "RefreshSummary",
]
