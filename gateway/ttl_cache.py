"""Time-bounded memo cache used by the transcript bridge.

Entries carry their insertion timestamp and are only valid while younger than
the TTL. Eviction is lazy: an expired entry is dropped the next time its key is
looked up. There is no background sweep.

Usage:
    from gateway.ttl_cache import TTLCache

    cache = TTLCache(ttl_seconds=600)
    cache.set("/tmp/a.jsonl", "key-alpha")
    cache.get("/tmp/a.jsonl")  # "key-alpha" until 10 minutes have passed
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

V = TypeVar("V")

# Ten minutes, matching the gateway default
DEFAULT_TTL_SECONDS = 10 * 60


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value and the clock reading at which it was stored."""

    value: V
    ts: float


class TTLCache(Generic[V]):
    """Mapping with a uniform TTL and lazy-on-read eviction.

    Without ``max_entries`` the cache is unbounded: a key that is never looked
    up again stays resident. With a cap, inserting a new key into a full cache
    first drops expired entries, then the oldest insertion.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int | None = None,
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def _is_expired(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.ts >= self.ttl_seconds

    def get(self, key: str) -> V | None:
        """Return the live value for key, evicting it if it has expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: V) -> None:
        """Insert or overwrite key, stamping it with the current clock reading."""
        with self._lock:
            now = self._clock()
            # Overwrites move the key to the newest position
            self._entries.pop(key, None)
            if self.max_entries is not None and len(self._entries) >= self.max_entries:
                self._make_room(now)
            self._entries[key] = CacheEntry(value=value, ts=now)

    def _make_room(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for k in expired:
            del self._entries[k]
        while len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]

    def __len__(self) -> int:
        """Resident entry count, including expired entries not yet looked up."""
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        # Residency only; does not check or evict expired entries
        with self._lock:
            return key in self._entries
