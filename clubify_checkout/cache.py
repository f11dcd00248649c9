from __future__ import annotations

import copy
import logging
import re
import time
from functools import lru_cache
from threading import Lock
from typing import Any, Callable, Iterable, Protocol, TypeVar, runtime_checkable

from clubify_checkout.observability import incr_metric, log_event


T = TypeVar("T")

_MISS = object()


class CacheBackend(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...


@runtime_checkable
class PatternCacheBackend(CacheBackend, Protocol):
    def delete_matching(self, pattern: str) -> int: ...


@lru_cache(maxsize=512)
def pattern_to_regex(pattern: str) -> re.Pattern[str]:
    """Glob where ``*`` matches any run of characters (``:`` included); the rest is literal."""
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile("^" + ".*".join(parts) + "$", re.DOTALL)


def key_matches(key: str, pattern: str) -> bool:
    return pattern_to_regex(pattern).match(key) is not None


class InMemoryCache:
    """Process-local TTL cache with wildcard deletion."""

    sweep_interval_seconds = 60

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = Lock()
        self._entries: dict[str, tuple[Any, float | None]] = {}
        self._next_sweep = clock() + self.sweep_interval_seconds

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return default
        # Copies stand in for the serialization a shared cache would do.
        return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl: int) -> None:
        now = self._clock()
        expires_at = now + ttl if ttl and ttl > 0 else None
        stored = copy.deepcopy(value)
        with self._lock:
            if now >= self._next_sweep:
                self._purge_expired(now)
            self._entries[key] = (stored, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_matching(self, pattern: str) -> int:
        regex = pattern_to_regex(pattern)
        with self._lock:
            doomed = [key for key in self._entries if regex.match(key)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def _purge_expired(self, now: float) -> None:
        # Caller holds the lock.
        expired = [key for key, (_, exp) in self._entries.items() if exp is not None and now >= exp]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self.sweep_interval_seconds



class CacheAside:
    """
    get-or-compute-and-store over an external cache backend.

    ``backend=None`` disables caching: every read computes. Backend failures
    are logged and treated as a miss (reads) or skipped (writes, deletes);
    errors raised by ``compute`` always propagate and are never stored.
    """

    def __init__(self, backend: CacheBackend | None = None, *, namespace: str | None = None) -> None:
        self.backend = backend
        self.namespace = namespace.strip(":") if namespace else None
        # Only filled for backends without delete_matching; key -> expiry (monotonic).
        self._issued: dict[str, float | None] = {}
        self._issued_lock = Lock()

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    def _full_key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def get_cached_or_execute(self, key: str, compute: Callable[[], T], ttl: int) -> T:
        if self.backend is None:
            return compute()
        full_key = self._full_key(key)
        cached = self._safe_get(full_key)
        if cached is not _MISS:
            incr_metric("cache.hits")
            return cached
        incr_metric("cache.misses")
        value = compute()
        self._safe_set(full_key, value, ttl)
        return value

    def invalidate(self, patterns: Iterable[str]) -> int:
        """Delete every entry whose key matches one of ``patterns`` (see pattern_to_regex)."""
        if self.backend is None:
            return 0
        deleted = 0
        for pattern in patterns:
            full_pattern = self._full_key(pattern)
            try:
                if isinstance(self.backend, PatternCacheBackend):
                    deleted += self.backend.delete_matching(full_pattern)
                else:
                    deleted += self._delete_issued(full_pattern)
            except Exception as exc:
                self._unavailable("invalidate", full_pattern, exc)
        if deleted:
            incr_metric("cache.invalidated", value=deleted)
        return deleted

    def _safe_get(self, key: str) -> Any:
        try:
            return self.backend.get(key, _MISS)
        except Exception as exc:
            self._unavailable("get", key, exc)
            return _MISS

    def _safe_set(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.backend.set(key, value, ttl)
        except Exception as exc:
            self._unavailable("set", key, exc)
            return
        if not isinstance(self.backend, PatternCacheBackend):
            self._track(key, ttl)

    def _track(self, key: str, ttl: int) -> None:
        now = time.monotonic()
        with self._issued_lock:
            self._issued = {k: exp for k, exp in self._issued.items() if exp is None or now < exp}
            self._issued[key] = now + ttl if ttl and ttl > 0 else None

    def _delete_issued(self, pattern: str) -> int:
        regex = pattern_to_regex(pattern)
        with self._issued_lock:
            doomed = [key for key in self._issued if regex.match(key)]
        for key in doomed:
            self.backend.delete(key)
            with self._issued_lock:
                self._issued.pop(key, None)
        return len(doomed)

    @staticmethod
    def _unavailable(operation: str, key: str, exc: Exception) -> None:
        incr_metric("cache.unavailable", operation=operation)
        log_event(
            "cache_unavailable",
            level=logging.WARNING,
            operation=operation,
            key=key,
            error=str(exc),
        )
