"""
AggregationScheduler -- In-process polling driver for the aggregation cache.

Contract:
    Calls ``AggregationRefresher.refresh_all()`` every
    ``refresh_interval_seconds`` on a background thread.  Readers never wait
    on it and it never takes component locks.

Architecture: progress_batch/services.  Uses
    progress_batch.services.aggregation_refresher for the work itself.

Invariants enforced:
    - A failed cycle is logged and retried on the next tick; the prior
      cache records stay readable.
    - Graceful shutdown: the stop signal is checked between projects and
      interrupts the wait between ticks.
"""

from __future__ import annotations

import threading

from progress_kernel.logging_config import get_logger

from progress_batch.domain.types import RefreshSummary
from progress_batch.services.aggregation_refresher import AggregationRefresher

logger = get_logger("batch.scheduler")


class AggregationScheduler:
    """Background refresher loop.

    Contract:
        - ``tick()`` runs one refresh cycle (public for testing).
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).
    """

    def __init__(
        self,
        refresher: AggregationRefresher,
        refresh_interval_seconds: float = 30.0,
    ):
        if refresh_interval_seconds <= 0:
            raise ValueError("refresh_interval_seconds must be positive")
        self._refresher = refresher
        self._interval = refresh_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.last_summary: RefreshSummary | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> RefreshSummary | None:
        """Run one refresh cycle.

        Returns the cycle summary, or None when the cycle could not run
        at all (e.g. the database is unreachable).
        """
        try:
            summary = self._refresher.refresh_all(should_stop=self._stop_event.is_set)
        except Exception:
            logger.exception("aggregation_tick_failed")
            return None
        self.last_summary = summary
        return summary

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="aggregation-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"refresh_interval_seconds": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current cycle to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._interval)
