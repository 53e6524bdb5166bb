from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SourceFamily(str, Enum):
    """Category of data source. Each family has its own id namespace."""

    PLUGIN = "plugin"
    CHANNEL = "channel"

    @property
    def wire_name(self) -> str:
        # The remote endpoint calls channels "tg".
        return "plugin" if self is SourceFamily.PLUGIN else "tg"

    @property
    def ids_param(self) -> str:
        return "plugins" if self is SourceFamily.PLUGIN else "channels"


class SearchPhase(str, Enum):
    IDLE = "idle"
    FAST_LOADING = "fast_loading"
    DEEP_LOADING = "deep_loading"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_running(self) -> bool:
        return self in (SearchPhase.FAST_LOADING, SearchPhase.DEEP_LOADING)


@dataclass(frozen=True)
class ResultItem:
    url: str  # identity key, unique per type bucket
    type: str  # result category ("baidu", "quark", "magnet", ...)
    payload: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, type_: str, data: Mapping[str, Any]) -> ResultItem:
        """Build an item from one entry of a ``merged_by_type`` bucket."""
        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise ValueError("result item without url")
        payload = {k: v for k, v in data.items() if k != "url"}
        return cls(url=url, type=type_, payload=payload)

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, **self.payload}


MergedResults = dict[str, list[ResultItem]]


@dataclass(frozen=True)
class SourceBatch:
    """Result of one remote call for one (family, batch) pair."""

    family: SourceFamily
    source_ids: tuple[str, ...]
    merged_by_type: MergedResults


@dataclass(frozen=True)
class SearchSettings:
    """User-controlled search settings.

    ``concurrency`` is clamped by the scheduler, ``plugin_timeout_ms`` is
    validated by the settings layer before it reaches the orchestrator.
    """

    enabled_plugins: tuple[str, ...] = ()
    enabled_channels: tuple[str, ...] = ()
    concurrency: int = 4
    plugin_timeout_ms: int = 5000

    @property
    def has_sources(self) -> bool:
        return bool(self.enabled_plugins or self.enabled_channels)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled_plugins": list(self.enabled_plugins),
            "enabled_channels": list(self.enabled_channels),
            "concurrency": self.concurrency,
            "plugin_timeout_ms": self.plugin_timeout_ms,
        }


@dataclass(frozen=True)
class SearchSnapshot:
    """Read-only view of the orchestration state."""

    generation: int
    phase: SearchPhase
    keyword: str = ""
    paused_at_batch: int = 0
    merged: MergedResults = field(default_factory=dict)
    error: str = ""
    elapsed_ms: int = 0
    searched: bool = False

    @property
    def total(self) -> int:
        return sum(len(items) for items in self.merged.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "phase": self.phase.value,
            "keyword": self.keyword,
            "paused_at_batch": self.paused_at_batch,
            "error": self.error,
            "elapsed_ms": self.elapsed_ms,
            "searched": self.searched,
            "total": self.total,
            "merged_by_type": {
                type_: [item.to_dict() for item in items]
                for type_, items in self.merged.items()
            },
        }


class SearchError(Exception):
    """Base error for search orchestration."""


class SearchValidationError(SearchError):
    """Keyword or settings rejected before any network activity."""


class EmptyKeywordError(SearchValidationError):
    pass


class NoSourcesEnabledError(SearchValidationError):
    pass
