from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from time import monotonic
from typing import Generic, TypeVar

V = TypeVar("V")


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[V]):
    """In-process key/value cache where every entry carries its own expiry.

    Entries are advisory: losing the cache (restart, new worker) only costs one
    extra lookup against the source of truth. Expired entries are invisible to
    ``get`` and physically removed by ``sweep``.
    """

    def __init__(
        self,
        *,
        default_ttl_seconds: float,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._default_ttl_seconds = max(0.0, float(default_ttl_seconds))
        self._clock = clock
        self._entries: dict[str, _Entry[V]] = {}
        self._lock = Lock()

    def get(self, key: str) -> V | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                self._entries.pop(key, None)
                return None
            return entry.value

    def set(self, key: str, value: V, *, ttl_seconds: float | None = None) -> None:
        ttl = self._default_ttl_seconds if ttl_seconds is None else max(0.0, float(ttl_seconds))
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
