"""
RecomputeExecutor -- checkpointed retroactive recompute after template edits.

Contract:
    ``submit_job()`` freezes the list of non-retired components of a
    (project, work-item type) into a PENDING job inside the caller's
    transaction (next to the TemplateChange that caused it).
    ``execute_job()`` / ``resume_job()`` walk that list in chunks, each
    chunk in its own transaction.

Architecture: progress_batch/services.  Imports from progress_batch.domain,
    progress_batch.models and kernel services.

Invariants enforced:
    - One chunk = one transaction: the chunk's component rows and the
      advanced checkpoint commit together.  A failed chunk rolls back alone;
      chunks committed before it stay correct.
    - The component lock of every component in a chunk is held for the
      whole chunk transaction, acquired in a stable order, so an in-flight
      milestone write is never interleaved with a recompute of the same row.
    - Recompute only re-derives percent_complete.  Milestone state and the
      event log (including stored deltas) are never touched.
    - All timestamps from the injected Clock.

Failure modes:
    - RecomputeJobNotFoundError: unknown job id.
    - RecomputeJobStateError: execute on a non-PENDING job, resume on a
      COMPLETED one.
    - A chunk failure is recorded on the job (FAILED, last_error) and
      reported in the RecomputeRunResult; resume_job() retries from the
      checkpoint.
"""

from __future__ import annotations

import time
from contextlib import ExitStack
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from progress_kernel.db.engine import is_postgres, session_scope
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.exceptions import RecomputeJobNotFoundError, RecomputeJobStateError
from progress_kernel.logging_config import LogContext, get_logger
from progress_kernel.models.component import Component
from progress_kernel.selectors.template_selector import TemplateResolver
from progress_kernel.services.component_lock import ComponentLockRegistry
from progress_kernel.services.milestone_recorder import MilestoneRecorder

from progress_batch.domain.types import (
    RecomputeJob,
    RecomputeJobStatus,
    RecomputeRunResult,
)
from progress_batch.models.recompute import RecomputeJobModel

logger = get_logger("batch.recompute")


class RecomputeExecutor:
    """Chunked, resumable percent-complete recompute.

    Contract:
        - ``submit_job()`` is flush-only; the caller owns that transaction.
        - ``execute_job()`` / ``resume_job()`` own their transactions.
        - ``max_chunks`` bounds one call; the job stays RUNNING and a later
          ``resume_job()`` picks up at the checkpoint.

    Non-goals:
        - Does NOT run in a background thread; callers decide when to run.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        locks: ComponentLockRegistry,
        clock: Clock | None = None,
        chunk_size: int = 100,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._session_factory = session_factory
        self._locks = locks
        self._clock = clock or SystemClock()
        self._chunk_size = chunk_size

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    def submit_job(
        self,
        session: Session,
        template_change_id: UUID,
        project_id: UUID,
        component_type: str,
        actor_id: UUID,
    ) -> RecomputeJob:
        """Create a PENDING job covering every current non-retired component."""
        component_ids = session.execute(
            select(Component.id)
            .where(
                Component.project_id == project_id,
                Component.component_type == component_type,
                Component.is_retired.is_(False),
            )
            .order_by(Component.id)
        ).scalars().all()

        model = RecomputeJobModel(
            template_change_id=template_change_id,
            project_id=project_id,
            component_type=component_type,
            status=RecomputeJobStatus.PENDING.value,
            component_ids=[str(cid) for cid in component_ids],
            checkpoint_index=0,
            chunk_size=self._chunk_size,
            processed_count=0,
            changed_count=0,
            created_by_id=actor_id,
        )
        session.add(model)
        session.flush()

        logger.info(
            "recompute_job_submitted",
            extra={
                "job_id": str(model.id),
                "project_id": str(project_id),
                "component_type": component_type,
                "total_components": len(component_ids),
                "chunk_size": self._chunk_size,
            },
        )
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Execute / resume
    # -------------------------------------------------------------------------

    def execute_job(self, job_id: UUID, actor_id: UUID, max_chunks: int | None = None) -> RecomputeRunResult:
        """Run a PENDING job from the start."""
        return self._run(job_id, actor_id, (RecomputeJobStatus.PENDING,), max_chunks)

    def resume_job(self, job_id: UUID, actor_id: UUID, max_chunks: int | None = None) -> RecomputeRunResult:
        """Continue a FAILED or interrupted job from its last checkpoint."""
        return self._run(
            job_id,
            actor_id,
            (RecomputeJobStatus.PENDING, RecomputeJobStatus.RUNNING, RecomputeJobStatus.FAILED),
            max_chunks,
        )

    def get_job(self, job_id: UUID) -> RecomputeJob:
        with session_scope(self._session_factory) as session:
            model = session.get(RecomputeJobModel, job_id)
            if model is None:
                raise RecomputeJobNotFoundError(str(job_id))
            return model.to_dto()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _lock_job(self, session: Session, job_id: UUID) -> RecomputeJobModel:
        stmt = select(RecomputeJobModel).where(RecomputeJobModel.id == job_id)
        if is_postgres(session):
            stmt = stmt.with_for_update()
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise RecomputeJobNotFoundError(str(job_id))
        return model

    def _start(self, job_id: UUID, actor_id: UUID, allowed: tuple[RecomputeJobStatus, ...]) -> None:
        with session_scope(self._session_factory) as session:
            model = self._lock_job(session, job_id)
            if RecomputeJobStatus(model.status) not in allowed:
                raise RecomputeJobStateError(str(job_id), model.status)
            model.status = RecomputeJobStatus.RUNNING.value
            if model.started_at is None:
                model.started_at = self._clock.now()
            model.last_error = None
            model.updated_by_id = actor_id

    def _run_chunk(self, job_id: UUID, actor_id: UUID) -> bool:
        """Process the next chunk.  Returns False when nothing was left."""
        with session_scope(self._session_factory) as session:
            chunk = self._lock_job(session, job_id).next_chunk()
        if not chunk:
            return False

        with ExitStack() as stack:
            for component_id in sorted(chunk, key=str):
                stack.enter_context(self._locks.hold(component_id))

            with session_scope(self._session_factory) as session:
                model = self._lock_job(session, job_id)
                resolver = TemplateResolver(session)
                recorder = MilestoneRecorder(session, self._clock, resolver)
                template = resolver.resolve(model.component_type, model.project_id)

                stmt = (
                    select(Component)
                    .where(Component.id.in_(chunk))
                    .order_by(Component.id)
                    .execution_options(populate_existing=True)
                )
                if is_postgres(session):
                    stmt = stmt.with_for_update()

                changed = 0
                for component in session.execute(stmt).scalars():
                    # Retired after submission
                    if component.is_retired:
                        continue
                    if recorder.recompute_percent(component, actor_id, template):
                        changed += 1

                model.checkpoint_index += len(chunk)
                model.processed_count += len(chunk)
                model.changed_count += changed
                model.updated_by_id = actor_id

        logger.info(
            "recompute_chunk_committed",
            extra={
                "job_id": str(job_id),
                "chunk_components": len(chunk),
                "changed_count": changed,
            },
        )
        return True

    def _fail(self, job_id: UUID, actor_id: UUID, error: str) -> None:
        with session_scope(self._session_factory) as session:
            model = self._lock_job(session, job_id)
            model.status = RecomputeJobStatus.FAILED.value
            model.last_error = error
            model.updated_by_id = actor_id

    def _finish(self, job_id: UUID, actor_id: UUID) -> None:
        with session_scope(self._session_factory) as session:
            model = self._lock_job(session, job_id)
            model.status = RecomputeJobStatus.COMPLETED.value
            model.completed_at = self._clock.now()
            model.updated_by_id = actor_id

    def _run(
        self,
        job_id: UUID,
        actor_id: UUID,
        allowed: tuple[RecomputeJobStatus, ...],
        max_chunks: int | None,
    ) -> RecomputeRunResult:
        with LogContext.bind(job_id=str(job_id), actor_id=str(actor_id)):
            return self._run_bound(job_id, actor_id, allowed, max_chunks)

    def _run_bound(
        self,
        job_id: UUID,
        actor_id: UUID,
        allowed: tuple[RecomputeJobStatus, ...],
        max_chunks: int | None,
    ) -> RecomputeRunResult:
        start_time = time.monotonic()
        self._start(job_id, actor_id, allowed)
        logger.info("recompute_job_started", extra={"job_id": str(job_id)})

        chunks = 0
        error = None
        finished = False
        while max_chunks is None or chunks < max_chunks:
            try:
                if not self._run_chunk(job_id, actor_id):
                    finished = True
                    break
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                logger.exception(
                    "recompute_chunk_failed",
                    extra={"job_id": str(job_id), "chunks_committed": chunks},
                )
                self._fail(job_id, actor_id, error)
                break
            chunks += 1

        if error is None and not finished:
            # Budget exhausted exactly at the end of the list
            job = self.get_job(job_id)
            finished = job.remaining == 0
        if finished:
            self._finish(job_id, actor_id)

        job = self.get_job(job_id)
        duration = int((time.monotonic() - start_time) * 1000)
        logger.info(
            "recompute_job_stopped",
            extra={
                "job_id": str(job_id),
                "status": job.status.value,
                "checkpoint_index": job.checkpoint_index,
                "total_components": job.total_components,
                "changed_count": job.changed_count,
                "duration_ms": duration,
            },
        )
        return RecomputeRunResult(
            job_id=job_id,
            status=job.status,
            total_components=job.total_components,
            checkpoint_index=job.checkpoint_index,
            processed_count=job.processed_count,
            changed_count=job.changed_count,
            chunks_committed=chunks,
            duration_ms=duration,
            error=error,
        )
