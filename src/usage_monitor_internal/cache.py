"""In-memory TTL cache with single-flight recomputation."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Hashable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, TypeVar

LOGGER = logging.getLogger(__name__)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry:
    """One stored value; `created_at` is a reading of the store's clock."""

    key: Hashable
    value: Any
    created_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_fresh(self, now: float) -> bool:
        """Return True when the entry may be served; a non-positive ttl is never fresh."""
        return self.ttl > 0 and self.age(now) <= self.ttl


class CacheStore:
    """Thread-safe key/value store with per-entry TTL.

    `get_or_compute` runs `compute` at most once per key at a time: callers that
    arrive while a computation is in flight wait for it and receive the same
    value or the same exception. Expired entries are only replaced on access;
    there is no background sweep. A failed computation leaves the previous
    entry in place so it stays readable through `get_stale`.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._in_flight: dict[Hashable, Future] = {}
        self._lock = threading.Lock()

    def get_or_compute(self, key: Hashable, ttl: float, compute: Callable[[], V]) -> V:
        """Return a fresh cached value, computing it (single-flight) when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(self._clock()):
                return entry.value
            future = self._in_flight.get(key)
            is_owner = future is None
            if future is None:
                future = Future()
                self._in_flight[key] = future

        if not is_owner:
            return future.result()

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(key, None)
            future.set_exception(exc)
            LOGGER.debug("Computation for cache key %r failed: %s", key, exc)
            raise

        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, created_at=self._clock(), ttl=ttl)
            self._in_flight.pop(key, None)
        future.set_result(value)
        return value

    def get(self, key: Hashable) -> Any | None:
        """Return the value for `key` only if it is fresh."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.is_fresh(self._clock()):
                return None
            return entry.value

    def get_stale(self, key: Hashable) -> CacheEntry | None:
        """Return the last stored entry for `key` regardless of its age."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: Hashable, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, created_at=self._clock(), ttl=ttl)

    def invalidate(self, key: Hashable) -> bool:
        """Drop the entry for `key`; return whether one existed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def expire(self, key: Hashable) -> bool:
        """Mark the entry for `key` expired but keep it readable through `get_stale`."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            self._entries[key] = CacheEntry(key=key, value=entry.value, created_at=entry.created_at, ttl=0)
            return True

    def invalidate_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every entry whose key matches `predicate`; return the number dropped."""
        with self._lock:
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def keys(self) -> list[Hashable]:
        with self._lock:
            return list(self._entries)

    def is_in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._in_flight

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
