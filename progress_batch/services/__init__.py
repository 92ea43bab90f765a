"""
progress_batch.services -- Recompute executor, aggregation refresher, scheduler.
"""

from progress_batch.services.aggregation_refresher import AggregationRefresher
from progress_batch.services.recompute_executor import RecomputeExecutor
from progress_batch.services.scheduler import AggregationScheduler

__all__ = [
    "AggregationRefresher",
    "AggregationScheduler",
    "RecomputeExecutor",
]
