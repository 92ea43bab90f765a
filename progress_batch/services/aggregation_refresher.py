"""
AggregationRefresher -- rebuilds the aggregation cache.

Contract:
    ``refresh_project()`` recomputes every rollup of one project (each
    drawing, each grouping entity, the project itself) and replaces the
    project's cached records in one transaction.  ``refresh_all()`` does
    that per project, isolating failures.

Architecture: progress_batch/services.  Reads through kernel selectors;
    the only writer of AggregationRecord.

Invariants enforced:
    - Membership goes through iter_resolved_components(), so inherited
      grouping counts exactly as it does in listings and delta reports.
    - Records are replaced wholesale: delete + insert in one transaction.
      Readers see the previous snapshot or the new one, never a mix.
    - On PostgreSQL the refresh transaction runs at REPEATABLE READ, a
      consistent as-of-start snapshot that takes no row locks; writers are
      never blocked and the refresher never takes component locks.
    - Every drawing and grouping entity gets a record, even with zero
      members.
    - refreshed_at comes from the injected Clock.
    - earned_hours sums each member's rounded earned hours, the same
      quantity the member's event deltas telescope to.

Failure modes:
    - ProjectNotFoundError: unknown project (not a refresh failure).
    - AggregationRefreshFailure: anything else; the transaction is rolled
      back, so the prior records stay in place (stale but valid).
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from progress_kernel.db.engine import is_postgres, session_scope
from progress_kernel.db.types import HUNDRED, ZERO, ensure_utc, round_hours, round_percent
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.domain.dtos import ComponentView
from progress_kernel.domain.inheritance import ATTRIBUTE_TO_KIND, GROUPING_ATTRIBUTES
from progress_kernel.domain.percent import earned_hours
from progress_kernel.exceptions import AggregationRefreshFailure, ProgressKernelError, ProjectNotFoundError
from progress_kernel.logging_config import LogContext, get_logger
from progress_kernel.models.aggregation import AggregationRecord, AggregationScope
from progress_kernel.models.drawing import Drawing
from progress_kernel.models.grouping import GroupingEntity
from progress_kernel.models.milestone_event import MilestoneEvent
from progress_kernel.models.project import Project
from progress_kernel.selectors.component_selector import ComponentSelector, iter_resolved_components

from progress_batch.domain.types import RefreshSummary

logger = get_logger("batch.aggregation")

ScopeKey = tuple[AggregationScope, UUID]


def build_record(
    project_id: UUID,
    scope: ScopeKey,
    members: list[ComponentView],
    blocked: set[UUID],
    last_activity: dict[UUID, datetime],
    refreshed_at: datetime,
) -> AggregationRecord:
    """Fold one scope's member components into a cache row."""
    scope_kind, scope_id = scope
    total = len(members)
    percent_sum = sum((m.percent_complete for m in members), ZERO)
    activity = [last_activity[m.component_id] for m in members if m.component_id in last_activity]
    return AggregationRecord(
        project_id=project_id,
        scope_kind=scope_kind.value,
        scope_id=scope_id,
        total_components=total,
        completed_components=sum(1 for m in members if m.percent_complete >= HUNDRED),
        average_percent=round_percent(percent_sum / total) if total else ZERO,
        blocked_components=sum(1 for m in members if m.component_id in blocked),
        budget_hours=round_hours(sum((m.budget_hours for m in members), ZERO)),
        earned_hours=sum((earned_hours(m.budget_hours, m.percent_complete) for m in members), ZERO),
        last_activity_at=max(activity) if activity else None,
        refreshed_at=refreshed_at,
    )


class AggregationRefresher:
    """Recomputes cached rollups, one transaction per project."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def refresh_project(self, project_id: UUID) -> int:
        """Rebuild one project's records.  Returns the number written.

        Raises:
            ProjectNotFoundError: unknown project.
            AggregationRefreshFailure: the refresh failed; prior records kept.
        """
        with LogContext.bind(project_id=project_id):
            try:
                with session_scope(self._session_factory) as session:
                    if is_postgres(session):
                        session.connection(execution_options={"isolation_level": "REPEATABLE READ"})
                    if session.get(Project, project_id) is None:
                        raise ProjectNotFoundError(str(project_id))
                    count = self._rebuild(session, project_id)
            except ProjectNotFoundError:
                raise
            except (ProgressKernelError, SQLAlchemyError) as exc:
                logger.error(
                    "aggregation_refresh_failed",
                    extra={"project_id": str(project_id), "error": f"{type(exc).__name__}: {exc}"},
                )
                raise AggregationRefreshFailure(str(project_id), str(exc)) from exc

            logger.info(
                "aggregation_refreshed",
                extra={"project_id": str(project_id), "record_count": count},
            )
            return count

    def refresh_all(self, should_stop: Callable[[], bool] | None = None) -> RefreshSummary:
        """Refresh every project; one project's failure does not stop the rest."""
        started_at = self._clock.now()
        with session_scope(self._session_factory) as session:
            project_ids = session.execute(select(Project.id).order_by(Project.code)).scalars().all()

        refreshed: list[UUID] = []
        failed: list[tuple[UUID, str]] = []
        records = 0
        for project_id in project_ids:
            if should_stop is not None and should_stop():
                break
            try:
                records += self.refresh_project(project_id)
                refreshed.append(project_id)
            except AggregationRefreshFailure as exc:
                failed.append((project_id, exc.reason))

        summary = RefreshSummary(
            refreshed=tuple(refreshed),
            failed=tuple(failed),
            record_count=records,
            started_at=started_at,
            completed_at=self._clock.now(),
        )
        logger.info(
            "aggregation_cycle_completed",
            extra={
                "refreshed_count": len(refreshed),
                "failed_count": len(failed),
                "record_count": records,
            },
        )
        return summary

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _scopes(self, session: Session, project_id: UUID) -> dict[ScopeKey, list[ComponentView]]:
        scopes: dict[ScopeKey, list[ComponentView]] = {(AggregationScope.PROJECT, project_id): []}
        for drawing_id in session.execute(
            select(Drawing.id).where(Drawing.project_id == project_id)
        ).scalars():
            scopes[(AggregationScope.DRAWING, drawing_id)] = []
        for grouping_id, kind in session.execute(
            select(GroupingEntity.id, GroupingEntity.kind).where(GroupingEntity.project_id == project_id)
        ):
            scopes[(AggregationScope(kind), grouping_id)] = []
        return scopes

    def _rebuild(self, session: Session, project_id: UUID) -> int:
        scopes = self._scopes(session, project_id)

        for view in iter_resolved_components(session, project_id):
            scopes[(AggregationScope.PROJECT, project_id)].append(view)
            if view.drawing_id is not None:
                scopes[(AggregationScope.DRAWING, view.drawing_id)].append(view)
            for attribute in GROUPING_ATTRIBUTES:
                value = view.resolved(attribute)
                if value is not None:
                    key = (AggregationScope(ATTRIBUTE_TO_KIND[attribute]), value)
                    scopes.setdefault(key, []).append(view)

        blocked = ComponentSelector(session).pending_review_component_ids(project_id)
        last_activity: dict[UUID, datetime] = {}
        for component_id, latest in session.execute(
            select(MilestoneEvent.component_id, func.max(MilestoneEvent.recorded_at))
            .where(MilestoneEvent.project_id == project_id)
            .group_by(MilestoneEvent.component_id)
        ):
            last_activity[component_id] = ensure_utc(latest)

        refreshed_at = self._clock.now()
        session.execute(delete(AggregationRecord).where(AggregationRecord.project_id == project_id))
        session.add_all(
            build_record(project_id, scope, members, blocked, last_activity, refreshed_at)
            for scope, members in scopes.items()
        )
        session.flush()
        return len(scopes)
