"""Session-scoped lookup cache with a TTL per lookup kind."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from threading import Lock
from typing import Any

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    kind: str
    key: str
    value: tuple[Any, ...]
    stored_at: float


class SessionCache:
    """In-memory ``(kind, key) -> records`` store.

    Expired entries are treated as absent on read and dropped lazily; there is
    no background sweep. A kind with a TTL of 0 (or no TTL at all) is never
    stored.
    """

    def __init__(self, ttls: Mapping[str, float], *, clock: Clock = time.monotonic) -> None:
        self._ttls = dict(ttls)
        self._clock = clock
        self._entries: dict[tuple[str, str], CacheEntry] = {}
        self._lock = Lock()

    def ttl_for(self, kind: str) -> float:
        return self._ttls.get(kind, 0.0)

    def enabled_for(self, kind: str) -> bool:
        return self.ttl_for(kind) > 0

    def is_expired(self, entry: CacheEntry) -> bool:
        """Return True when ``now - stored_at`` reaches the kind's TTL."""
        return self._clock() - entry.stored_at >= self.ttl_for(entry.kind)

    def get(self, kind: str, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get((kind, key))
            if entry is None:
                return None
            if self.is_expired(entry):
                del self._entries[(kind, key)]
                return None
            return entry

    def set(
        self,
        kind: str,
        key: str,
        value: tuple[Any, ...] | list[Any],
        *,
        overwrite: bool = True,
    ) -> CacheEntry | None:
        """Store an entry, replacing any previous one unless ``overwrite`` is False.

        Returns the live entry, or None when the kind is not cached.
        """
        if not self.enabled_for(kind):
            return None
        entry = CacheEntry(kind=kind, key=key, value=tuple(value), stored_at=self._clock())
        with self._lock:
            current = self._entries.get((kind, key))
            if not overwrite and current is not None and not self.is_expired(current):
                return current
            self._entries[(kind, key)] = entry
        return entry

    def contains(self, kind: str, key: str) -> bool:
        return self.get(kind, key) is not None

    def clear(self, kind: str | None = None) -> None:
        with self._lock:
            if kind is None:
                self._entries.clear()
                return
            for entry_kind, key in [item for item in self._entries if item[0] == kind]:
                del self._entries[(entry_kind, key)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
