"""Port for search-term popularity persistence."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from panhub.domain.entities.hot_search import HotSearchItem, HotSearchStats


@runtime_checkable
class HotSearchStorePort(Protocol):
    async def record_search(self, term: str) -> None: ...

    async def get_hot_searches(self, limit: int | None = None) -> list[HotSearchItem]: ...

    async def delete(self, term: str) -> bool: ...

    async def clear(self) -> None: ...

    async def stats(self) -> HotSearchStats: ...
