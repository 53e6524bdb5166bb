"""Search settings persistence backed by CachePort."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

import structlog

from panhub.domain.entities.search import SearchSettings
from panhub.domain.ports.cache import CachePort

log = structlog.get_logger(__name__)

SETTINGS_KEY: str = "panhub.settings"

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 16


def _string_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [x for x in value if isinstance(x, str)]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class CacheSettingsStore:
    """Loads, validates and saves ``SearchSettings``.

    Stored data is validated on load: non-string ids are dropped, plugins
    outside the catalog are dropped, concurrency is clamped to [1, 16] and
    invalid values fall back to defaults. When no valid plugin remains the
    default plugin list is restored.
    """

    def __init__(
        self,
        cache: CachePort,
        *,
        defaults: SearchSettings,
        plugin_catalog: Sequence[str],
    ) -> None:
        self.cache = cache
        self.defaults = defaults
        self.plugin_catalog = tuple(plugin_catalog)

    async def load(self) -> SearchSettings:
        try:
            raw = await self.cache.get(SETTINGS_KEY)
        except Exception:
            log.warning("settings_load_error", exc_info=True)
            return self.defaults
        if raw is None:
            return self.defaults
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            log.warning("settings_corrupt", key=SETTINGS_KEY)
            return self.defaults
        if not isinstance(parsed, dict):
            return self.defaults
        return self.validate(parsed)

    def validate(self, data: dict[str, Any]) -> SearchSettings:
        channels = _string_list(data.get("enabled_channels"))
        plugins = _string_list(data.get("enabled_plugins"))
        concurrency = data.get("concurrency")
        timeout = data.get("plugin_timeout_ms")

        if plugins is None:
            plugins = list(self.defaults.enabled_plugins)
        plugins = [name for name in plugins if name in self.plugin_catalog]
        if not plugins:
            plugins = list(self.defaults.enabled_plugins)

        return SearchSettings(
            enabled_plugins=tuple(plugins),
            enabled_channels=tuple(
                channels if channels is not None else self.defaults.enabled_channels
            ),
            concurrency=(
                min(MAX_CONCURRENCY, max(MIN_CONCURRENCY, int(concurrency)))
                if _is_number(concurrency) and concurrency > 0
                else self.defaults.concurrency
            ),
            plugin_timeout_ms=(
                int(timeout)
                if _is_number(timeout) and timeout > 0
                else self.defaults.plugin_timeout_ms
            ),
        )

    async def save(self, settings: SearchSettings) -> SearchSettings:
        try:
            await self.cache.set(SETTINGS_KEY, json.dumps(settings.to_dict()), ttl=0)
        except Exception:
            log.warning("settings_save_error", exc_info=True)
        else:
            log.debug("settings_saved", plugins=len(settings.enabled_plugins))
        return settings

    async def reset_to_default(self) -> SearchSettings:
        try:
            await self.cache.delete(SETTINGS_KEY)
        except Exception:
            log.warning("settings_reset_error", exc_info=True)
        log.info("settings_reset")
        return self.defaults

    async def select_all_plugins(self) -> SearchSettings:
        current = await self.load()
        return await self.save(replace(current, enabled_plugins=self.plugin_catalog))

    async def clear_plugins(self) -> SearchSettings:
        current = await self.load()
        return await self.save(replace(current, enabled_plugins=()))

    async def select_all_channels(self) -> SearchSettings:
        current = await self.load()
        return await self.save(
            replace(current, enabled_channels=self.defaults.enabled_channels)
        )

    async def clear_channels(self) -> SearchSettings:
        current = await self.load()
        return await self.save(replace(current, enabled_channels=()))
