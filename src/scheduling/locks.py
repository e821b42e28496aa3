"""Per-(mechanic, date) locks serializing conflict checks with their writes."""

import datetime as dt
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from src.config import settings
from src.errors import ConcurrentConflictError

logger = logging.getLogger(__name__)


class MechanicDateLocks:
    """
    Registry of re-entrant locks keyed on ``(mechanic_id, date)``.

    At most one assignment or status transition runs per mechanic-date at
    a time. Waiting longer than ``timeout`` raises ConcurrentConflictError
    so the caller can retry.
    """

    def __init__(self, timeout: float = settings.scheduling.lock_timeout_sec) -> None:
        self._timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[tuple[int, dt.date], threading.RLock] = {}

    def _lock_for(self, key: tuple[int, dt.date]) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, mechanic_id: Optional[int], on: dt.date) -> Iterator[None]:
        """Hold the lock for a mechanic-date. No-op when no mechanic is set."""
        if mechanic_id is None:
            yield
            return

        key = (mechanic_id, on)
        lock = self._lock_for(key)
        if not lock.acquire(timeout=self._timeout):
            logger.warning("Lock wait timed out for mechanic %s on %s", mechanic_id, on)
            raise ConcurrentConflictError(
                f"Mechanic {mechanic_id} schedule for {on.isoformat()} is busy, retry the request",
                field="mechanic_id",
                ref=mechanic_id,
            )
        try:
            yield
        finally:
            lock.release()
