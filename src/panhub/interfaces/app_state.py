"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from panhub.infrastructure.config import AppConfig

if TYPE_CHECKING:
    from panhub.application.search import SearchSessionRegistry
    from panhub.domain.ports import (
        CachePort,
        HotSearchStorePort,
        SettingsStorePort,
        SourceGatewayPort,
    )
    from panhub.infrastructure.metrics import MetricsCollector


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure
    cache: CachePort
    http_client: httpx.AsyncClient

    # Domain Ports
    gateway: SourceGatewayPort
    hot_searches: HotSearchStorePort
    settings_store: SettingsStorePort

    # Application Services
    sessions: SearchSessionRegistry

    # Metrics (zero-impact in-memory counters)
    metrics: MetricsCollector
