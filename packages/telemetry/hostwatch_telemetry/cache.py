"""Fetch-if-stale cache applied independently to each metric family."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Generic, Optional, Tuple, TypeVar


T = TypeVar("T")

_LOG = logging.getLogger("hostwatch.telemetry.cache")


class CachedMetric(Generic[T]):
    """Single cache slot for one metric family.

    ``ttl`` is the refresh interval in seconds; ``None`` keeps the first
    successful value for the lifetime of the object. Fetch failures are logged
    and degrade to the previous value (or ``empty`` when there is none), so
    ``get()`` never raises.

    ``reconcile(previous, fresh)`` chooses the value to store after a
    successful refresh; ``on_store(value)`` is called with whatever was stored.
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], T],
        ttl: Optional[float],
        *,
        empty: Optional[T] = None,
        reconcile: Optional[Callable[[T, T], T]] = None,
        on_store: Optional[Callable[[T], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl = ttl
        self._fetch = fetch
        self._empty = empty
        self._reconcile = reconcile
        self._on_store = on_store
        self._clock = clock
        self._lock = threading.Lock()
        # (value, fetched_at) is swapped as one object so readers never see half an update.
        self._entry: Optional[Tuple[T, float]] = None
        # Bumped under the lock on every failed fetch.
        self._failures = 0

    @property
    def fetched_at(self) -> Optional[float]:
        entry = self._entry
        return entry[1] if entry is not None else None

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None

    def _is_fresh(self, entry: Optional[Tuple[T, float]]) -> bool:
        if entry is None:
            return False
        if self.ttl is None:
            return True
        return self._clock() - entry[1] < self.ttl

    def get(self) -> T:
        entry = self._entry
        if self._is_fresh(entry):
            return entry[0]  # type: ignore[index]

        failures = self._failures
        if entry is None:
            self._lock.acquire()
        elif not self._lock.acquire(blocking=False):
            # A refresh is already running; serve the last complete value.
            return entry[0]

        try:
            entry = self._entry
            if self._is_fresh(entry):
                return entry[0]  # type: ignore[index]
            if entry is None and self._failures != failures:
                # The fetch this caller waited on failed; do not repeat it.
                return self._empty  # type: ignore[return-value]
            return self._refresh(entry)
        finally:
            self._lock.release()

    def _refresh(self, entry: Optional[Tuple[T, float]]) -> T:
        try:
            fresh = self._fetch()
        except Exception as exc:
            self._failures += 1
            _LOG.error(
                f"failed to refresh {self.name}: {exc}",
                extra={"event": "metric_fetch_failed", "family": self.name},
            )
            if entry is not None:
                return entry[0]
            return self._empty  # type: ignore[return-value]

        value = fresh
        if entry is not None and self._reconcile is not None:
            value = self._reconcile(entry[0], fresh)
        self._entry = (value, self._clock())
        if self._on_store is not None:
            self._on_store(value)
        return value
