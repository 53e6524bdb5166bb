"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from panhub.domain.entities.search import SearchSettings
from panhub.infrastructure.config.defaults import DEFAULT_PLUGINS

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]
CacheBackendName = Literal["memory", "diskcache", "redis"]

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 16


def _normalize_path(value: Any) -> Path:
    """
    Normalize a path-like value without causing filesystem side-effects.

    This function MUST NOT create directories or files.
    """
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class CacheConfig(BaseModel):
    """Cache configuration (backend-agnostic)."""

    model_config = ConfigDict(populate_by_name=True)

    backend: CacheBackendName = Field(
        default="memory",
        description="Cache backend: 'memory', 'diskcache' (SQLite) or 'redis'.",
    )
    directory: Path = Field(
        default=Path("./.cache/panhub"),
        alias="dir",
        description="Diskcache directory (only when backend=diskcache).",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (only when backend=redis).",
    )
    ttl_seconds: int = Field(
        default=3600,
        description="Default TTL for cache entries (seconds).",
    )
    max_concurrent: int = Field(
        default=10,
        description="Max parallel diskcache ops (semaphore limit).",
    )
    max_entries: int = Field(
        default=1000,
        description="Max entries held by the memory backend.",
    )
    max_memory_bytes: int = Field(
        default=100 * 1024 * 1024,
        description="Max estimated bytes held by the memory backend.",
    )

    @field_validator("directory", mode="before")
    @classmethod
    def _validate_directory(cls, v: Any) -> Path:
        return _normalize_path(v)

    @field_validator("ttl_seconds")
    @classmethod
    def _validate_ttl(cls, v: int) -> int:
        if v < 0:
            raise ValueError("cache ttl_seconds must be >= 0")
        return v

    @field_validator("max_concurrent", "max_entries", "max_memory_bytes")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("cache limits must be > 0")
        return v


class HotSearchConfig(BaseModel):
    max_entries: int = Field(default=30, description="Terms kept by the hot-search store.")
    default_limit: int = Field(default=30, description="Default list size for GET.")

    @field_validator("max_entries", "default_limit")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("hot_searches limits must be > 0")
        return v


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (sources/search/http/logging/cache/hot_searches).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    # General
    app_name: str = Field(default="panhub", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # Sources (YAML section: sources.*)
    api_base: str = Field(
        default="http://localhost:3000/api",
        validation_alias=AliasChoices("api_base", AliasPath("sources", "api_base")),
        description="Base URL of the aggregated search endpoint ({api_base}/search).",
    )
    plugins: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PLUGINS),
        validation_alias=AliasChoices("plugins", AliasPath("sources", "plugins")),
        description="Plugin catalog. Enabled plugins outside it are ignored.",
    )
    default_channels: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "default_channels", AliasPath("sources", "default_channels")
        ),
        description="Channels enabled by default.",
    )

    # Search (YAML section: search.*)
    search_concurrency: int = Field(
        default=4,
        validation_alias=AliasChoices(
            "search_concurrency", AliasPath("search", "concurrency")
        ),
        description="Default batch size per source family (clamped to 1..16).",
    )
    plugin_timeout_ms: int = Field(
        default=5000,
        validation_alias=AliasChoices(
            "plugin_timeout_ms", AliasPath("search", "plugin_timeout_ms")
        ),
        description="Default per-source timeout forwarded to the endpoint.",
    )
    timeout_slack_ms: int = Field(
        default=2000,
        validation_alias=AliasChoices(
            "timeout_slack_ms", AliasPath("search", "timeout_slack_ms")
        ),
        description="Local wait on top of the per-source timeout.",
    )
    max_sessions: int = Field(
        default=100,
        validation_alias=AliasChoices("max_sessions", AliasPath("search", "max_sessions")),
        description="Max live search sessions held by the HTTP API.",
    )

    # HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=30.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds", AliasPath("http", "timeout_seconds")
        ),
        description="HTTP client timeout in seconds.",
    )
    http_follow_redirects: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "http_follow_redirects", AliasPath("http", "follow_redirects")
        ),
        description="Whether HTTP client follows redirects.",
    )
    http_user_agent: str = Field(
        default="PanHub/0.1.0",
        validation_alias=AliasChoices("http_user_agent", AliasPath("http", "user_agent")),
        description="User-Agent for outgoing HTTP requests.",
    )
    http_retry_max_attempts: int = Field(
        default=3,
        validation_alias=AliasChoices(
            "http_retry_max_attempts", AliasPath("http", "retry_max_attempts")
        ),
        description="Retries after the first attempt on 429/503 or transport errors.",
    )
    http_retry_backoff_base: float = Field(
        default=1.0,
        validation_alias=AliasChoices(
            "http_retry_backoff_base", AliasPath("http", "retry_backoff_base")
        ),
        description="Base delay (seconds) for exponential backoff.",
    )
    http_retry_max_backoff: float = Field(
        default=30.0,
        validation_alias=AliasChoices(
            "http_retry_max_backoff", AliasPath("http", "retry_max_backoff")
        ),
        description="Upper bound for a single retry delay (seconds).",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices("log_level", AliasPath("logging", "level")),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices("log_format", AliasPath("logging", "format")),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    cache: CacheConfig = Field(default_factory=CacheConfig)
    hot_searches: HotSearchConfig = Field(default_factory=HotSearchConfig)

    @field_validator("plugins", "default_channels", mode="before")
    @classmethod
    def _validate_id_lists(cls, v: Any) -> Any:
        v = _split_csv(v)
        if isinstance(v, list):
            return [item for item in v if isinstance(item, str) and item]
        return v

    @field_validator("search_concurrency")
    @classmethod
    def _clamp_concurrency(cls, v: int) -> int:
        return min(MAX_CONCURRENCY, max(MIN_CONCURRENCY, v))

    @field_validator("plugin_timeout_ms", "http_timeout_seconds")
    @classmethod
    def _validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @field_validator("timeout_slack_ms", "http_retry_max_attempts")
    @classmethod
    def _validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("api_base")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def default_search_settings(self) -> SearchSettings:
        return SearchSettings(
            enabled_plugins=tuple(self.plugins),
            enabled_channels=tuple(self.default_channels),
            concurrency=self.search_concurrency,
            plugin_timeout_ms=self.plugin_timeout_ms,
        )

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "sources": {
                "api_base": self.api_base,
                "plugins": list(self.plugins),
                "default_channels": list(self.default_channels),
            },
            "search": {
                "concurrency": self.search_concurrency,
                "plugin_timeout_ms": self.plugin_timeout_ms,
                "timeout_slack_ms": self.timeout_slack_ms,
                "max_sessions": self.max_sessions,
            },
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "follow_redirects": self.http_follow_redirects,
                "user_agent": self.http_user_agent,
                "retry_max_attempts": self.http_retry_max_attempts,
                "retry_backoff_base": self.http_retry_backoff_base,
                "retry_max_backoff": self.http_retry_max_backoff,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
            "cache": {
                **self.cache.model_dump(exclude={"directory"}),
                "dir": str(self.cache.directory),
            },
            "hot_searches": self.hot_searches.model_dump(),
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    load.py creates EnvOverrides() to read PANHUB_* variables, keeps only
    the values that were set, merges them over YAML/defaults, then
    validates AppConfig.

    Supported env var examples (flat, explicit):
    - PANHUB_API_BASE
    - PANHUB_CONCURRENCY
    - PANHUB_PLUGINS (comma-separated)
    - PANHUB_CACHE_BACKEND
    - PANHUB_LOG_LEVEL
    """

    model_config = SettingsConfigDict(
        env_prefix="PANHUB_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    api_base: Optional[str] = None
    plugins: Optional[str] = None
    default_channels: Optional[str] = None

    concurrency: Optional[int] = None
    plugin_timeout_ms: Optional[int] = None
    timeout_slack_ms: Optional[int] = None

    http_timeout_seconds: Optional[float] = None
    http_follow_redirects: Optional[bool] = None
    http_user_agent: Optional[str] = None
    http_retry_max_attempts: Optional[int] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    cache_backend: Optional[CacheBackendName] = None
    cache_dir: Optional[Path] = None
    cache_redis_url: Optional[str] = None
    cache_ttl_seconds: Optional[int] = None

    @field_validator("cache_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        data = self.model_dump(exclude_none=True)
        for key in ("plugins", "default_channels"):
            if key in data:
                data[key] = _split_csv(data[key])
        return data
