"""Request models shared by the settings and search routers."""

from __future__ import annotations

from dataclasses import replace

from pydantic import BaseModel, Field

from panhub.domain.entities.search import SearchSettings


class SettingsPayload(BaseModel):
    """Partial search settings. Unset fields keep the base value."""

    enabled_plugins: list[str] | None = Field(default=None)
    enabled_channels: list[str] | None = Field(default=None)
    concurrency: int | None = Field(default=None, ge=1, le=16)
    plugin_timeout_ms: int | None = Field(default=None, gt=0)

    def apply(self, base: SearchSettings) -> SearchSettings:
        changes = self.model_dump(exclude_none=True)
        for key in ("enabled_plugins", "enabled_channels"):
            if key in changes:
                changes[key] = tuple(changes[key])
        return replace(base, **changes)
