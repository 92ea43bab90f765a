"""
Module: progress_kernel.selectors.aggregation_selector
Responsibility: Read access to the aggregation cache.
Architecture position: Kernel > Selectors.

Readers never trigger or wait for a refresh.  A scope that has never been
refreshed has no snapshot and reads as None (unavailable, not an error).
"""

from uuid import UUID

from sqlalchemy import select

from progress_kernel.db.types import ensure_utc
from progress_kernel.domain.dtos import AggregationSnapshot
from progress_kernel.domain.percent import as_decimal
from progress_kernel.models.aggregation import AggregationRecord, AggregationScope
from progress_kernel.selectors.base import BaseSelector


def to_snapshot(record: AggregationRecord) -> AggregationSnapshot:
    return AggregationSnapshot(
        scope_kind=record.scope_kind,
        scope_id=record.scope_id,
        project_id=record.project_id,
        total_components=record.total_components,
        completed_components=record.completed_components,
        average_percent=as_decimal(record.average_percent),
        blocked_components=record.blocked_components,
        budget_hours=as_decimal(record.budget_hours),
        earned_hours=as_decimal(record.earned_hours),
        last_activity_at=ensure_utc(record.last_activity_at),
        refreshed_at=ensure_utc(record.refreshed_at),
    )


class AggregationSelector(BaseSelector[AggregationRecord]):
    """Cached rollup reads."""

    def get_aggregation(self, scope_kind: AggregationScope | str, scope_id: UUID) -> AggregationSnapshot | None:
        record = self.session.execute(
            select(AggregationRecord).where(
                AggregationRecord.scope_kind == AggregationScope(scope_kind).value,
                AggregationRecord.scope_id == scope_id,
            )
        ).scalar_one_or_none()
        return to_snapshot(record) if record is not None else None

    def list_project_aggregations(
        self,
        project_id: UUID,
        scope_kind: AggregationScope | str | None = None,
    ) -> list[AggregationSnapshot]:
        stmt = select(AggregationRecord).where(AggregationRecord.project_id == project_id)
        if scope_kind is not None:
            stmt = stmt.where(AggregationRecord.scope_kind == AggregationScope(scope_kind).value)
        records = self.session.execute(
            stmt.order_by(AggregationRecord.scope_kind, AggregationRecord.scope_id)
        ).scalars()
        return [to_snapshot(r) for r in records]
