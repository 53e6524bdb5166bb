"""Port for persisted search settings."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from panhub.domain.entities.search import SearchSettings


@runtime_checkable
class SettingsStorePort(Protocol):
    async def load(self) -> SearchSettings: ...

    async def save(self, settings: SearchSettings) -> SearchSettings: ...

    async def reset_to_default(self) -> SearchSettings: ...
