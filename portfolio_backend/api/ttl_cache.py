# In-memory read-through cache with per-entry TTL, built on cachetools.
# Live entries sit in a TLRUCache whose time-to-use is each entry's own
# expires_at, so get() never returns an expired entry and every write purges
# whatever has expired. With keep_stale=True the last good entry per key is
# also kept in a plain Cache that peek() reads, so a failed refresh can still
# serve stale data after the live entry is gone.
#
# One instance lives for the lifetime of the process; nothing is persisted.
# There is no size bound: memory grows with the key space, which is fine for
# a few hundred storage keys / repositories.

import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from cachetools import Cache, TLRUCache

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Immutable cached value. A refresh replaces the entry, never mutates it."""

    key: str
    value: T
    cached_at: float
    expires_at: float

    def seconds_left(self, now: float) -> float:
        return max(0.0, self.expires_at - now)


def _entry_expiry(_key, entry: CacheEntry, _now: float) -> float:
    return entry.expires_at


class TTLCache(Generic[T]):
    def __init__(self, keep_stale: bool = False, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._live: TLRUCache = TLRUCache(maxsize=math.inf, ttu=_entry_expiry, timer=clock)
        self._stale: Cache | None = Cache(maxsize=math.inf) if keep_stale else None
        # Guards single operations only; a get followed by a put is not atomic.
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> CacheEntry[T] | None:
        """Return the entry for *key* if it has not expired, else None."""
        with self._lock:
            return self._live.get(key)

    def peek(self, key: str) -> CacheEntry[T] | None:
        """Return the last entry stored for *key*, expired or not (stale serving)."""
        with self._lock:
            if self._stale is not None:
                return self._stale.get(key)
            return self._live.get(key)

    def put(self, key: str, value: T, ttl: float) -> CacheEntry[T]:
        """Store *value* under *key* for *ttl* seconds, replacing any prior entry."""
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl!r}")
        now = self._clock()
        entry = CacheEntry(key=key, value=value, cached_at=now, expires_at=now + ttl)
        with self._lock:
            self._live[key] = entry
            if self._stale is not None:
                self._stale[key] = entry
        return entry

    def sweep(self) -> int:
        """Drop expired live entries. Returns the number removed."""
        with self._lock:
            before = len(self._live)
            self._live.expire()
            return before - len(self._live)

    def clear(self) -> None:
        with self._lock:
            self._live.clear()
            if self._stale is not None:
                self._stale.clear()

    def __len__(self) -> int:
        with self._lock:
            self._live.expire()
            return len(self._live)

    def __contains__(self, key: Any) -> bool:
        with self._lock:
            return key in self._live
