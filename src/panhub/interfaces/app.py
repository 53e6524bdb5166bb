"""FastAPI application factory (create_app)."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from starlette.responses import Response

from panhub.infrastructure.config import AppConfig
from panhub.interfaces.app_state import AppState
from panhub.interfaces.composition import lifespan

log = structlog.get_logger(__name__)


def create_app(config: AppConfig) -> FastAPI:
    """Create FastAPI app: configuration only, no resource initialization.

    Resources (cache, HTTP client, stores, sessions) are created in lifespan().
    """
    app = FastAPI(
        title="PanHub",
        description="Batched multi-source search orchestration",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config

    from panhub.interfaces.api.hot_searches.router import router as hot_searches_router
    from panhub.interfaces.api.search.router import router as search_router
    from panhub.interfaces.api.settings.router import router as settings_router
    from panhub.interfaces.api.stats.router import router as stats_router

    app.include_router(search_router, prefix="/api/v1")
    app.include_router(hot_searches_router, prefix="/api/v1")
    app.include_router(settings_router, prefix="/api/v1")
    app.include_router(stats_router, prefix="/api/v1")

    @app.get("/api/v1/healthz")
    async def healthz() -> dict[str, str | int]:
        """Liveness probe: returns 200 as long as the process is running."""
        sessions = getattr(app.state, "sessions", None)
        return {
            "status": "ok",
            "plugins": len(config.plugins),
            "sessions": len(sessions) if sessions is not None else 0,
        }

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ):
        start = time.perf_counter()
        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            status_code = getattr(locals().get("response", None), "status_code", 500)

            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                query=str(request.url.query),
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app
