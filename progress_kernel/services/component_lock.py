"""
ComponentLockRegistry -- per-component write serialization.

Responsibility:
    Guarantees that two writers of the SAME component never interleave, so
    no delta is computed against a stale previous value.  Writers of
    different components never share a lock.

Architecture position:
    Kernel > Services.  Held by ProgressEngine and the recompute executor
    around the whole transaction (load -> compute -> flush -> commit).

Invariants enforced:
    - One lock object per component id while at least one holder or waiter
      exists; entries are dropped when the last user leaves.
    - The registry mutex is held only for dictionary access, never while
      waiting for a component lock.
    - On PostgreSQL the recorder additionally takes SELECT ... FOR UPDATE on
      the component row, which serializes writers across processes.

Failure modes:
    - ConcurrentModificationConflict when the lock is not acquired within
      the timeout.  Nothing was written; the caller retries.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from progress_kernel.exceptions import ConcurrentModificationConflict
from progress_kernel.logging_config import get_logger

logger = get_logger("services.component_lock")


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class ComponentLockRegistry:
    """Keyed lock arena: one lock per component id, created on demand."""

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._mutex = threading.Lock()
        self._entries: dict[UUID, _LockEntry] = {}

    def _checkout(self, component_id: UUID) -> _LockEntry:
        with self._mutex:
            entry = self._entries.get(component_id)
            if entry is None:
                entry = _LockEntry()
                self._entries[component_id] = entry
            entry.users += 1
            return entry

    def _checkin(self, component_id: UUID, entry: _LockEntry) -> None:
        with self._mutex:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(component_id, None)

    @contextmanager
    def hold(self, component_id: UUID, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the lock of one component for the duration of the block.

        Raises:
            ConcurrentModificationConflict: lock not acquired within timeout.
        """
        wait = self.timeout_seconds if timeout is None else timeout
        entry = self._checkout(component_id)
        try:
            if not entry.lock.acquire(timeout=wait):
                logger.warning(
                    "component_lock_timeout",
                    extra={"component_id": str(component_id), "timeout_seconds": wait},
                )
                raise ConcurrentModificationConflict(
                    "Component",
                    str(component_id),
                    f"another update is in progress (waited {wait}s)",
                )
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(component_id, entry)

    def active_count(self) -> int:
        """Number of components currently held or awaited."""
        with self._mutex:
            return len(self._entries)
