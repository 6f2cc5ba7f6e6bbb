"""Small in-process TTL cache used by the price and transaction sources."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional


@dataclass
class CacheEntry:
    value: Any
    expires_at: Optional[float]

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class TTLCache:
    """Key/value store with per-entry expiry and hit/miss counters.

    ``ttl_seconds=None`` keeps entries until ``clear`` is called.
    """

    def __init__(self, ttl_seconds: float | None = None, *, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return default
        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            return default
        self.hits += 1
        return entry.value

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def set(self, key: Hashable, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = self._clock() + ttl if ttl is not None else None
        self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict[str, int]:
        self.purge_expired()
        return {"size": len(self._entries), "hits": self.hits, "misses": self.misses}


__all__ = ["CacheEntry", "TTLCache"]
