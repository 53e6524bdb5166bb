"""Runtime metrics endpoint."""

from __future__ import annotations

from typing import Any, cast

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from panhub.infrastructure.cache.memory_adapter import MemoryCacheAdapter
from panhub.interfaces.app_state import AppState

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/metrics")
async def metrics(request: Request) -> JSONResponse:
    """Return in-memory runtime metrics.

    Includes per-family batch call stats, live session count and, for
    the memory backend, cache usage.
    """
    state = cast(AppState, request.app.state)

    data: dict[str, Any] = {}

    m = getattr(state, "metrics", None)
    if m is not None:
        data.update(m.snapshot())

    sessions = getattr(state, "sessions", None)
    if sessions is not None:
        data["sessions"] = len(sessions)

    cache = getattr(state, "cache", None)
    if isinstance(cache, MemoryCacheAdapter):
        data["cache"] = cache.stats()

    return JSONResponse(content=data)
