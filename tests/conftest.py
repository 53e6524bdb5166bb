"""Shared test fixtures for PanHub test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from unittest.mock import AsyncMock

import pytest

from panhub.domain.entities.search import (
    MergedResults,
    ResultItem,
    SearchSettings,
    SourceBatch,
    SourceFamily,
)

# ---------------------------------------------------------------------------
# Domain helpers
# ---------------------------------------------------------------------------


def item(url: str, type_: str = "movie", **payload: object) -> ResultItem:
    return ResultItem(url=url, type=type_, payload=payload)


def plugin_ids(n: int) -> tuple[str, ...]:
    return tuple(f"p{i}" for i in range(n))


# ---------------------------------------------------------------------------
# Fake source gateway
# ---------------------------------------------------------------------------


class FakeGateway:
    """SourceGatewayPort double.

    ``responses`` maps a batch's source ids to the ``merged_by_type`` it
    returns (default: one item per source id). ``hold(ids)`` makes the
    call for that batch wait until the returned event is set.
    """

    def __init__(self, responses: dict[tuple[str, ...], MergedResults] | None = None) -> None:
        self.responses = dict(responses or {})
        self.failing: set[tuple[str, ...]] = set()
        self.calls: list[tuple[SourceFamily, tuple[str, ...], str]] = []
        self._gates: dict[tuple[str, ...], asyncio.Event] = {}

    def hold(self, ids: Sequence[str]) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[tuple(ids)] = gate
        return gate

    def release(self, ids: Sequence[str]) -> None:
        gate = self._gates.pop(tuple(ids), None)
        if gate is not None:
            gate.set()

    def called_ids(self) -> list[tuple[str, ...]]:
        return [ids for _, ids, _ in self.calls]

    async def wait_for_call(self, ids: Sequence[str], rounds: int = 200) -> None:
        for _ in range(rounds):
            if tuple(ids) in self.called_ids():
                return
            await asyncio.sleep(0)
        raise AssertionError(f"no call for {ids!r}")

    async def fetch(
        self,
        family: SourceFamily,
        source_ids: Sequence[str],
        keyword: str,
        *,
        concurrency: int,
        plugin_timeout_ms: int,
    ) -> SourceBatch | None:
        ids = tuple(source_ids)
        self.calls.append((family, ids, keyword))
        gate = self._gates.get(ids)
        if gate is not None:
            await gate.wait()
        if ids in self.failing:
            return None
        merged = self.responses.get(ids)
        if merged is None:
            merged = {"movie": [item(f"https://pan.example/{sid}") for sid in ids]}
        return SourceBatch(family=family, source_ids=ids, merged_by_type=merged)


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def settings() -> SearchSettings:
    """Twenty plugins, no channels, concurrency 4."""
    return SearchSettings(enabled_plugins=plugin_ids(20), concurrency=4)


# ---------------------------------------------------------------------------
# Mock port fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_cache() -> AsyncMock:
    """Mock CachePort."""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock()
    cache.delete = AsyncMock(return_value=True)
    cache.exists = AsyncMock(return_value=False)
    cache.clear = AsyncMock()
    cache.aclose = AsyncMock()
    return cache


@pytest.fixture()
def mock_hot_searches() -> AsyncMock:
    """Mock HotSearchStorePort."""
    store = AsyncMock()
    store.record_search = AsyncMock()
    store.get_hot_searches = AsyncMock(return_value=[])
    return store
