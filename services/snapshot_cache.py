from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class _Entry(Generic[T]):
    value: T
    stored_at: float


class SnapshotCache(Generic[T]):
    """Holds the most recent snapshot for ``ttl_seconds``.

    The entry is swapped as a whole, so readers see either the previous or the
    new snapshot and never a half-built one.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: Optional[_Entry[T]] = None
        self._compute_lock = Lock()

    def get_fresh(self) -> Optional[T]:
        entry = self._entry
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            return None
        return entry.value

    def store(self, value: T) -> None:
        self._entry = _Entry(value=value, stored_at=self._clock())

    def clear(self) -> None:
        self._entry = None

    def get_or_compute(
        self,
        compute: Callable[[], T],
        should_store: Callable[[T], bool] = lambda _value: True,
    ) -> T:
        """Return the fresh snapshot, or compute, store and return a new one.

        Concurrent callers are serialised so that a burst of requests after
        expiry triggers a single computation.
        """
        cached = self.get_fresh()
        if cached is not None:
            return cached

        with self._compute_lock:
            cached = self.get_fresh()
            if cached is not None:
                return cached
            value = compute()
            if should_store(value):
                self.store(value)
            return value
