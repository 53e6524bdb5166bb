"""Cache factory - builds the configured CachePort backend."""

from __future__ import annotations

from typing import Literal

import structlog

from panhub.domain.ports.cache import CachePort
from panhub.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from panhub.infrastructure.cache.memory_adapter import MemoryCacheAdapter
from panhub.infrastructure.cache.redis_adapter import RedisAdapter

log = structlog.get_logger(__name__)

CacheBackend = Literal["memory", "diskcache", "redis"]


def create_cache(
    backend: CacheBackend = "memory",
    *,
    directory: str = "./.cache/panhub",
    redis_url: str = "redis://localhost:6379/0",
    ttl_seconds: int = 3600,
    max_concurrent: int = 10,
    max_entries: int = 1000,
    max_memory_bytes: int = 100 * 1024 * 1024,
) -> CachePort:
    """Create the cache adapter for *backend*.

    Args:
        backend: ``"memory"``, ``"diskcache"`` or ``"redis"``.
        directory: Diskcache path.
        redis_url: Redis connection string.
        ttl_seconds: Default TTL for every backend.
        max_concurrent: Semaphore limit for diskcache (Redis uses 50).
        max_entries: Entry bound for the memory backend.
        max_memory_bytes: Size bound for the memory backend.

    Raises:
        ValueError: If *backend* is unknown.
    """
    log.info("cache_factory_create", backend=backend, ttl=ttl_seconds)
    if backend == "memory":
        return MemoryCacheAdapter(
            ttl_seconds=ttl_seconds,
            max_entries=max_entries,
            max_memory_bytes=max_memory_bytes,
        )
    if backend == "diskcache":
        return DiskcacheAdapter(
            directory=directory,
            ttl_seconds=ttl_seconds,
            max_concurrent=max_concurrent,
        )
    if backend == "redis":
        return RedisAdapter(url=redis_url, ttl_seconds=ttl_seconds, max_concurrent=50)
    raise ValueError(
        f"Unknown cache backend: {backend!r}. Must be 'memory', 'diskcache' or 'redis'."
    )
