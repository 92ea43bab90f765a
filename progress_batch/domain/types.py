"""
progress_batch.domain.types -- Pure frozen dataclasses for background work.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - All DTOs are frozen dataclasses (immutable).
    - RecomputeJob.checkpoint_index never exceeds total_components.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class RecomputeJobStatus(str, Enum):
    """Job-level lifecycle status."""

    PENDING = "pending"  # Submitted, not yet started
    RUNNING = "running"  # Started; may also mean interrupted between chunks
    COMPLETED = "completed"  # Every component processed
    FAILED = "failed"  # A chunk failed; resumable from the checkpoint


# =============================================================================
# Recompute DTOs
# =============================================================================


@dataclass(frozen=True)
class RecomputeJob:
    """Immutable snapshot of a retroactive recompute job.

    ``component_ids`` is fixed at submission; ``checkpoint_index`` is the
    number of those components already committed.
    """

    job_id: UUID
    template_change_id: UUID
    project_id: UUID
    component_type: str
    status: RecomputeJobStatus
    component_ids: tuple[UUID, ...] = ()
    checkpoint_index: int = 0
    chunk_size: int = 100
    processed_count: int = 0
    changed_count: int = 0
    last_error: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: UUID | None = None

    @property
    def total_components(self) -> int:
        return len(self.component_ids)

    @property
    def remaining(self) -> int:
        return self.total_components - self.checkpoint_index


@dataclass(frozen=True)
class RecomputeRunResult:
    """Outcome of one execute/resume call.

    ``chunks_committed`` counts only chunks committed by this call.
    """

    job_id: UUID
    status: RecomputeJobStatus
    total_components: int
    checkpoint_index: int
    processed_count: int
    changed_count: int
    chunks_committed: int
    duration_ms: int = 0
    error: str | None = None


# =============================================================================
# Aggregation refresh DTOs
# =============================================================================


@dataclass(frozen=True)
class RefreshSummary:
    """Result of refreshing the aggregation cache of several projects."""

    refreshed: tuple[UUID, ...] = ()
    failed: tuple[tuple[UUID, str], ...] = ()
    record_count: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return not self.failed
