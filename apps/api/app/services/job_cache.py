from __future__ import annotations

import threading
import time
from typing import Any, Callable, Protocol, TypeVar

from fastapi import Request

T = TypeVar("T")


class JobWindowCache(Protocol):
    def get(self, key: str, loader: Callable[[], T]) -> T: ...

    def invalidate_after(self, ttl_seconds: float) -> None: ...

    def clear(self) -> None: ...


class TTLJobCache:
    """Process-local read cache for job sale-window snapshots.

    Entries may be stale for up to ``ttl_seconds``; sale-window verdicts are
    always recomputed by the caller against the current time.
    """

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, Any]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: str, loader: Callable[[], T]) -> T:
        now = self._clock()
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None and cached[0] > now:
                return cached[1]
        value = loader()
        with self._lock:
            self._entries[key] = (now + self._ttl, value)
        return value

    def invalidate_after(self, ttl_seconds: float) -> None:
        with self._lock:
            self._ttl = float(ttl_seconds)
            now = self._clock()
            self._entries = {
                key: (min(expires, now + self._ttl), value) for key, (expires, value) in self._entries.items()
            }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class NullJobCache:
    def get(self, key: str, loader: Callable[[], T]) -> T:
        return loader()

    def invalidate_after(self, ttl_seconds: float) -> None:
        return None

    def clear(self) -> None:
        return None


def get_job_cache(request: Request) -> JobWindowCache:
    return request.app.state.job_cache
