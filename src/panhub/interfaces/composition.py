"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

import httpx
import structlog
from fastapi import FastAPI

from panhub.application.search import (
    RequestExecutor,
    SearchOrchestrator,
    SearchSessionRegistry,
)
from panhub.domain.entities.search import SearchSnapshot
from panhub.domain.ports import ClipboardPort, HotSearchStorePort, SourceGatewayPort
from panhub.infrastructure.cache.cache_factory import create_cache
from panhub.infrastructure.common.retry_transport import RetryTransport
from panhub.infrastructure.config.schema import AppConfig
from panhub.infrastructure.metrics import MetricsCollector
from panhub.infrastructure.persistence.hot_search_cache import CacheHotSearchStore
from panhub.infrastructure.persistence.settings_cache import CacheSettingsStore
from panhub.infrastructure.sources.http_gateway import HttpxSourceGateway
from panhub.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


def build_http_client(config: AppConfig) -> httpx.AsyncClient:
    """Shared client with 429/503 and transport-error retry."""
    transport = RetryTransport(
        wrapped=httpx.AsyncHTTPTransport(),
        max_retries=config.http_retry_max_attempts,
        backoff_base=config.http_retry_backoff_base,
        max_backoff=config.http_retry_max_backoff,
    )
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        follow_redirects=config.http_follow_redirects,
    )


def orchestrator_factory(
    config: AppConfig,
    gateway: SourceGatewayPort,
    *,
    metrics: MetricsCollector | None = None,
    hot_searches: HotSearchStorePort | None = None,
    clipboard: ClipboardPort | None = None,
    on_change: Callable[[SearchSnapshot], None] | None = None,
) -> Callable[[], SearchOrchestrator]:
    """Build a factory producing one orchestrator per search session."""

    def _build() -> SearchOrchestrator:
        executor = RequestExecutor(
            gateway,
            timeout_slack_ms=config.timeout_slack_ms,
            metrics=metrics,
        )
        return SearchOrchestrator(
            executor,
            known_plugins=config.plugins,
            hot_searches=hot_searches,
            clipboard=clipboard,
            on_change=on_change,
        )

    return _build


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: Initialize and cleanup all resources (DI Composition Root).

    Order matters:
        1. Cache (required by the stores)
        2. HTTP Client (required by the gateway)
        3. Source gateway
        4. Hot-search and settings stores (use cache)
        5. Session registry (uses everything above)
    """
    state = cast(AppState, app.state)
    config = state.config

    # 0) Metrics collector (must exist before components that record)
    state.metrics = MetricsCollector()

    # 1) Cache
    cache = create_cache(
        backend=config.cache.backend,
        directory=str(config.cache.directory),
        redis_url=config.cache.redis_url,
        ttl_seconds=config.cache.ttl_seconds,
        max_concurrent=config.cache.max_concurrent,
        max_entries=config.cache.max_entries,
        max_memory_bytes=config.cache.max_memory_bytes,
    )

    await cache.__aenter__()
    state.cache = cache
    log.info("cache_initialized", backend=config.cache.backend)

    # 2) HTTP client
    state.http_client = build_http_client(config)
    log.info(
        "http_client_initialized",
        retry_max_attempts=config.http_retry_max_attempts,
        timeout_seconds=config.http_timeout_seconds,
    )

    # 3) Source gateway
    state.gateway = HttpxSourceGateway(
        http_client=state.http_client,
        api_base=config.api_base,
    )
    log.info("source_gateway_initialized", api_base=config.api_base)

    # 4) Stores
    state.hot_searches = CacheHotSearchStore(
        cache=state.cache,
        max_entries=config.hot_searches.max_entries,
    )
    state.settings_store = CacheSettingsStore(
        cache=state.cache,
        defaults=config.default_search_settings(),
        plugin_catalog=config.plugins,
    )
    log.info("stores_initialized", hot_search_max_entries=config.hot_searches.max_entries)

    # 5) Session registry
    state.sessions = SearchSessionRegistry(
        orchestrator_factory(
            config,
            state.gateway,
            metrics=state.metrics,
            hot_searches=state.hot_searches,
        ),
        max_sessions=config.max_sessions,
    )
    log.info("search_sessions_initialized", max_sessions=config.max_sessions)

    log.info("app_startup_complete")

    try:
        yield
    finally:
        await state.sessions.aclose()
        log.info("search_sessions_closed")

        await state.http_client.aclose()
        log.info("http_client_closed")

        await state.cache.aclose()
        log.info("cache_closed")

        log.info("app_shutdown_complete")
