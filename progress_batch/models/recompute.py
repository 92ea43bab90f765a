"""
ORM model for retroactive recompute jobs.

Contract:
    RecomputeJobModel persists a job's frozen component list, its checkpoint
    and counters.  ``to_dto()`` detaches it into a RecomputeJob.

Architecture: progress_batch/models. Imports from progress_kernel.db only.

Invariants enforced:
    - component_ids is written once at submission and never reordered, so
      checkpoint_index always addresses the same components.
    - checkpoint_index only moves forward, in the same transaction as the
      components of the chunk it covers.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from progress_batch.domain.types import RecomputeJob


class RecomputeJobModel(TrackedBase):
    """Persistent recompute job linked to the template change that caused it."""

    __tablename__ = "recompute_jobs"

    __table_args__ = (
        Index("ix_recompute_jobs_status", "status"),
        Index("ix_recompute_jobs_project_type", "project_id", "component_type"),
    )

    template_change_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("template_changes.id"),
        nullable=False,
        unique=True,
    )
    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )
    component_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    # Component ids as strings, in processing order
    component_ids: Mapped[list] = mapped_column(JSON, nullable=False)
    checkpoint_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    chunk_size: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    processed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    changed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def total_components(self) -> int:
        return len(self.component_ids or [])

    def next_chunk(self) -> list[UUID]:
        """Component ids of the chunk after the checkpoint (empty when done)."""
        end = self.checkpoint_index + self.chunk_size
        return [UUID(value) for value in (self.component_ids or [])[self.checkpoint_index:end]]

    def to_dto(self) -> RecomputeJob:
        from progress_batch.domain.types import RecomputeJob, RecomputeJobStatus
        from progress_kernel.db.types import ensure_utc

        return RecomputeJob(
            job_id=self.id,
            template_change_id=self.template_change_id,
            project_id=self.project_id,
            component_type=self.component_type,
            status=RecomputeJobStatus(self.status),
            component_ids=tuple(UUID(value) for value in (self.component_ids or [])),
            checkpoint_index=self.checkpoint_index,
            chunk_size=self.chunk_size,
            processed_count=self.processed_count,
            changed_count=self.changed_count,
            last_error=self.last_error,
            created_at=ensure_utc(self.created_at),
            started_at=ensure_utc(self.started_at),
            completed_at=ensure_utc(self.completed_at),
            created_by=self.created_by_id,
        )

    def __repr__(self) -> str:
        return f"<RecomputeJobModel {self.component_type} {self.status} {self.checkpoint_index}/{self.total_components}>"
