"""Key-value storage behind persisted settings and hot-search terms."""

from __future__ import annotations

from typing import Any, Protocol


class CachePort(Protocol):
    """Async key-value store with per-entry TTL.

    PanHub keeps two kinds of records here: the JSON-encoded search
    settings and the ranked hot-search list. Both are written with
    ``ttl=0`` (no expiry); the default TTL applies to everything else.

    Backends: MemoryCacheAdapter, DiskcacheAdapter, RedisAdapter. All of
    them are opened with ``async with cache:`` before first use.
    """

    async def get(self, key: str) -> Any:
        """Stored value, or None when missing or expired."""
        ...

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        """Store *value*. ``ttl=None`` uses the backend default, ``0`` never expires."""
        ...

    async def delete(self, key: str) -> bool: ...

    async def exists(self, key: str) -> bool: ...

    async def clear(self) -> None:
        """Remove every key, settings and hot searches included."""
        ...

    async def aclose(self) -> None: ...

    async def __aenter__(self) -> CachePort: ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None: ...
