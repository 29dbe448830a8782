"""Expiring keyed cache with single-flight construction."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Hashable, Optional, TypeVar

from cachetools import TLRUCache

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


class RemovalCause(str, Enum):
    """Why an entry left the cache."""

    EXPLICIT = "explicit"
    REPLACED = "replaced"
    EXPIRED = "expired"
    SIZE = "size"

    @property
    def was_evicted(self) -> bool:
        return self in (RemovalCause.EXPIRED, RemovalCause.SIZE)


RemovalListener = Callable[[K, Optional[V], RemovalCause], None]


@dataclass(slots=True)
class CacheEntry(Generic[K, V]):
    """A resident value together with its write and access timestamps."""

    key: K
    value: V
    written_at: float
    accessed_at: float


@dataclass(slots=True)
class CacheStats:
    """Running counters for cache activity."""

    hits: int = 0
    misses: int = 0
    loads: int = 0
    load_failures: int = 0
    evictions: int = 0


class _EntryTable(TLRUCache):
    """TLRU storage that reports expirations and size evictions to its owner."""

    def __init__(self, maxsize: int, ttu, timer: Clock, on_removal) -> None:
        super().__init__(maxsize=maxsize, ttu=ttu, timer=timer)
        self._on_removal = on_removal

    def expire(self, time=None):
        expired = super().expire(time)
        for key, entry in expired:
            self._on_removal(key, entry, RemovalCause.EXPIRED)
        return expired

    def popitem(self):
        key, entry = super().popitem()
        self._on_removal(key, entry, RemovalCause.SIZE)
        return key, entry


class ExpiringKeyedCache(Generic[K, V]):
    """Bounded get-or-create cache with write and access expiry.

    Entries expire ``expire_after_write`` seconds after they were stored or
    ``expire_after_access`` seconds after they were last read, whichever comes
    first. An entry is already expired at the exact moment its deadline is
    reached. Beyond ``maximum_size`` resident entries the least recently used
    entry is evicted.

    :meth:`get_or_create` runs the builder at most once per key among all
    concurrent callers. Construction happens outside the cache lock, so
    callers asking for different keys never wait on each other's builders.
    A builder failure is handed to every caller waiting on that attempt and
    leaves the key empty, so the next call retries.

    The removal listener is invoked after the cache lock is released;
    anything it raises is logged and discarded.
    """

    def __init__(
        self,
        *,
        maximum_size: int = 1000,
        expire_after_write: float = 30 * 60,
        expire_after_access: float = 10 * 60,
        removal_listener: RemovalListener | None = None,
        timer: Clock | None = None,
    ) -> None:
        if maximum_size <= 0:
            raise ValueError("maximum_size must be positive.")
        if expire_after_write <= 0 or expire_after_access <= 0:
            raise ValueError("Expiry durations must be positive.")

        self._maximum_size = maximum_size
        self._expire_after_write = float(expire_after_write)
        self._expire_after_access = float(expire_after_access)
        self._removal_listener = removal_listener
        self._timer = timer or time.monotonic

        self._lock = threading.RLock()
        self._entries: _EntryTable = _EntryTable(
            maximum_size, self._expires_at, self._timer, self._record_removal
        )
        self._in_flight: dict[K, Future] = {}
        self._pending: list[tuple[K, Optional[V], RemovalCause]] = []
        self._stats = CacheStats()

    @property
    def maximum_size(self) -> int:
        return self._maximum_size

    def get_or_create(self, key: K, builder: Callable[[K], V], *, timeout: float | None = None) -> V:
        """Return the live value for ``key``, building it once if absent.

        ``timeout`` limits how long a caller waits for a construction started
        by another caller; on expiry that caller gets :class:`TimeoutError`
        while the construction carries on and still populates the cache.
        """

        with self._lock:
            entry = self._lookup(key)
            if entry is not None:
                value = entry.value
                flight = None
                leader = False
            else:
                self._stats.misses += 1
                flight = self._in_flight.get(key)
                leader = flight is None
                if leader:
                    flight = Future()
                    self._in_flight[key] = flight
        self._dispatch_pending()

        if flight is None:
            return value
        if not leader:
            logger.debug("Waiting on in-flight construction for cache key %s", key)
            return flight.result(timeout=timeout)
        return self._load(key, builder, flight)

    def get_if_present(self, key: K) -> Optional[V]:
        """Return the live value for ``key`` or ``None`` without building."""

        with self._lock:
            entry = self._lookup(key)
            if entry is None:
                self._stats.misses += 1
        self._dispatch_pending()
        return entry.value if entry is not None else None

    def put(self, key: K, value: V) -> None:
        """Store ``value`` under ``key``, replacing any resident value."""

        with self._lock:
            self._store(key, value)
        self._dispatch_pending()

    def invalidate(self, key: K) -> None:
        """Remove ``key`` if it is resident."""

        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is not None:
                self._record_removal(key, entry, RemovalCause.EXPLICIT)
        self._dispatch_pending()

    def invalidate_all(self) -> None:
        """Remove every resident entry."""

        with self._lock:
            self._entries.expire()
            for key in list(self._entries.keys()):
                entry = self._entries.pop(key, None)
                if entry is not None:
                    self._record_removal(key, entry, RemovalCause.EXPLICIT)
        self._dispatch_pending()

    def clean_up(self) -> None:
        """Drop expired entries now instead of on the next write."""

        with self._lock:
            self._entries.expire()
        self._dispatch_pending()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                loads=self._stats.loads,
                load_failures=self._stats.load_failures,
                evictions=self._stats.evictions,
            )

    def __len__(self) -> int:
        with self._lock:
            size = len(self._entries)
        self._dispatch_pending()
        return size

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not self._is_expired(entry, self._timer())

    def __repr__(self) -> str:
        return (
            f"ExpiringKeyedCache(maximum_size={self._maximum_size}, "
            f"expire_after_write={self._expire_after_write}, "
            f"expire_after_access={self._expire_after_access})"
        )

    def _load(self, key: K, builder: Callable[[K], V], flight: Future) -> V:
        try:
            value = builder(key)
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(key, None)
                self._stats.load_failures += 1
            flight.set_exception(exc)
            logger.debug("Construction failed for cache key %s: %s", key, exc)
            raise

        with self._lock:
            self._in_flight.pop(key, None)
            self._stats.loads += 1
            self._store(key, value)
        flight.set_result(value)
        self._dispatch_pending()
        return value

    def _lookup(self, key: K) -> Optional[CacheEntry[K, V]]:
        # Caller holds the lock.
        entry = self._entries.get(key)
        now = self._timer()
        if entry is None or self._is_expired(entry, now):
            return None
        entry.accessed_at = now
        # Re-inserting recomputes the expiry from the refreshed access time.
        self._entries[key] = entry
        self._stats.hits += 1
        return entry

    def _store(self, key: K, value: V) -> None:
        # Caller holds the lock.
        previous = self._entries.get(key)
        now = self._timer()
        self._entries[key] = CacheEntry(key=key, value=value, written_at=now, accessed_at=now)
        if previous is not None and previous.value is not value:
            self._record_removal(key, previous, RemovalCause.REPLACED)

    def _expires_at(self, _key, entry: CacheEntry[K, V], _now: float) -> float:
        return min(
            entry.written_at + self._expire_after_write,
            entry.accessed_at + self._expire_after_access,
        )

    def _is_expired(self, entry: CacheEntry[K, V], now: float) -> bool:
        return now >= self._expires_at(entry.key, entry, now)

    def _record_removal(self, key: K, entry: Optional[CacheEntry[K, V]], cause: RemovalCause) -> None:
        if cause.was_evicted:
            self._stats.evictions += 1
        self._pending.append((key, entry.value if entry is not None else None, cause))

    def _dispatch_pending(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, []
        if self._removal_listener is None:
            return
        for key, value, cause in pending:
            try:
                self._removal_listener(key, value, cause)
            except Exception:
                logger.exception("Removal listener failed for cache key %s (cause=%s)", key, cause.value)
