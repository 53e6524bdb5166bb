"""In-process LRU cache bounded by entry count and estimated size."""

from __future__ import annotations

import pickle
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

log = structlog.get_logger(__name__)

_FALLBACK_SIZE = 64


def estimate_size(value: Any) -> int:
    """Rough byte size of *value* (pickled length)."""
    if value is None:
        return 8
    if isinstance(value, str):
        return len(value) * 2
    if isinstance(value, bytes):
        return len(value)
    try:
        return len(pickle.dumps(value))
    except (pickle.PickleError, TypeError, AttributeError):
        return _FALLBACK_SIZE


@dataclass
class _Record:
    value: Any
    expire_at: float | None
    size: int

    def expired(self, now: float) -> bool:
        return self.expire_at is not None and self.expire_at <= now


class MemoryCacheAdapter:
    """Async CachePort over an ``OrderedDict`` kept in LRU order.

    - Expired entries are evicted before live ones.
    - Live entries are evicted least-recently-used first once
      ``max_entries`` or ``max_memory_bytes`` would be exceeded.
    - A periodic sweep (at most every ``cleanup_interval`` seconds, run
      lazily on access) drops expired entries once usage passes
      ``memory_threshold``.

    Args:
        ttl_seconds: Default TTL for ``set()``. ``<= 0`` means no expiry.
        max_entries: Max number of entries.
        max_memory_bytes: Max summed estimated size.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        max_entries: int = 1000,
        max_memory_bytes: int = 100 * 1024 * 1024,
        *,
        cleanup_interval: float = 300.0,
        memory_threshold: float = 0.8,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = ttl_seconds
        self.max_entries = max_entries
        self.max_memory_bytes = max_memory_bytes
        self._cleanup_interval = cleanup_interval
        self._memory_threshold = memory_threshold
        self._clock = clock

        self._store: OrderedDict[str, _Record] = OrderedDict()
        self._memory_bytes = 0
        self._last_cleanup = clock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

        log.info(
            "memory_cache_adapter_init",
            default_ttl=ttl_seconds,
            max_entries=max_entries,
            max_memory_bytes=max_memory_bytes,
        )

    # --- Context Manager ---
    async def __aenter__(self) -> MemoryCacheAdapter:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._store.clear()
        self._memory_bytes = 0

    # --- CachePort implementation ---
    async def get(self, key: str) -> Any | None:
        self._maybe_cleanup()
        rec = self._store.get(key)
        if rec is None:
            self.misses += 1
            return None
        if rec.expired(self._clock()):
            self._drop(key)
            self.misses += 1
            return None
        self._store.move_to_end(key)
        self.hits += 1
        return rec.value

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        self._maybe_cleanup()
        if key in self._store:
            self._drop(key)

        expire = ttl if ttl is not None else self.default_ttl
        now = self._clock()
        size = estimate_size(value)
        self._make_room(size, now)
        self._store[key] = _Record(
            value=value,
            expire_at=now + expire if expire > 0 else None,
            size=size,
        )
        self._memory_bytes += size
        log.debug("cache_set", key=key, ttl=expire, size_bytes=size)

    async def delete(self, key: str) -> bool:
        if key not in self._store:
            return False
        self._drop(key)
        return True

    async def exists(self, key: str) -> bool:
        rec = self._store.get(key)
        if rec is None:
            return False
        if rec.expired(self._clock()):
            self._drop(key)
            return False
        return True

    async def clear(self) -> None:
        self._store.clear()
        self._memory_bytes = 0
        self.hits = self.misses = self.evictions = 0
        log.warning("cache_cleared", backend="memory")

    # --- Introspection ---
    def __len__(self) -> int:
        return len(self._store)

    @property
    def memory_bytes(self) -> int:
        return self._memory_bytes

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        expired = sum(1 for rec in self._store.values() if rec.expired(now))
        return {
            "total": len(self._store),
            "active": len(self._store) - expired,
            "expired": expired,
            "max_entries": self.max_entries,
            "memory_bytes": self._memory_bytes,
            "max_memory_bytes": self.max_memory_bytes,
            "memory_usage_percent": round(
                self._memory_bytes / self.max_memory_bytes * 100, 2
            ),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }

    def force_cleanup(self) -> None:
        self._cleanup(self._clock())

    # --- Internals ---
    def _drop(self, key: str) -> None:
        rec = self._store.pop(key)
        self._memory_bytes -= rec.size

    def _evict(self, key: str) -> None:
        self._drop(key)
        self.evictions += 1

    def _purge_expired(self, now: float) -> int:
        expired = [k for k, rec in self._store.items() if rec.expired(now)]
        for key in expired:
            self._evict(key)
        return len(expired)

    def _make_room(self, incoming_size: int, now: float) -> None:
        if not self._over_limits(incoming_size):
            return
        self._purge_expired(now)
        while self._store and self._over_limits(incoming_size):
            oldest = next(iter(self._store))
            self._evict(oldest)

    def _over_limits(self, incoming_size: int) -> bool:
        return (
            len(self._store) >= self.max_entries
            or self._memory_bytes + incoming_size > self.max_memory_bytes
        )

    def _maybe_cleanup(self) -> None:
        now = self._clock()
        if now - self._last_cleanup < self._cleanup_interval:
            return
        usage = self._memory_bytes / self.max_memory_bytes
        if usage > self._memory_threshold or len(self._store) > self.max_entries:
            self._cleanup(now)
        self._last_cleanup = now

    def _cleanup(self, now: float) -> None:
        purged = self._purge_expired(now)
        while self._store and (
            len(self._store) > self.max_entries
            or self._memory_bytes > self.max_memory_bytes
        ):
            self._evict(next(iter(self._store)))
            purged += 1
        self._last_cleanup = now
        if purged:
            log.debug("memory_cache_cleanup", evicted=purged, remaining=len(self._store))
