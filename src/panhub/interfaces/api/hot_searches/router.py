"""Hot search terms, wrapped in the ``{code, message, data}`` envelope.

Failures are reported with ``code=-1`` and a 200 status.
"""

from __future__ import annotations

from typing import Any, cast

import structlog
from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from panhub.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/hot-searches", tags=["hot-searches"])


class RecordSearchRequest(BaseModel):
    term: str = ""


def _envelope(code: int, message: str, data: Any) -> dict[str, Any]:
    return {"code": code, "message": message, "data": data}


@router.get("")
async def list_hot_searches(
    request: Request,
    limit: int = Query(default=30, ge=0, description="Max terms to return."),
) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    try:
        items = await state.hot_searches.get_hot_searches(limit)
    except Exception:
        log.error("hot_searches_list_failed", exc_info=True)
        return _envelope(-1, "failed to load hot searches", {"hotSearches": []})

    log.debug("hot_searches_listed", limit=limit, count=len(items))
    return _envelope(0, "success", {"hotSearches": [i.to_dict() for i in items]})


@router.post("")
async def record_hot_search(
    request: Request,
    body: RecordSearchRequest | None = None,
) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    if body is None or not body.term.strip():
        log.info("hot_search_missing_term")
        return _envelope(-1, "missing term", None)

    try:
        await state.hot_searches.record_search(body.term)
    except Exception:
        log.error("hot_search_record_failed", term=body.term, exc_info=True)
        return _envelope(-1, "failed to record search term", None)

    return _envelope(0, "success", None)


@router.get("/stats")
async def hot_search_stats(request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    try:
        stats = await state.hot_searches.stats()
    except Exception:
        log.error("hot_search_stats_failed", exc_info=True)
        return _envelope(-1, "failed to load stats", None)
    return _envelope(0, "success", stats.to_dict())


@router.delete("/{term}")
async def delete_hot_search(term: str, request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    deleted = await state.hot_searches.delete(term)
    if not deleted:
        return _envelope(-1, "term not found", None)
    return _envelope(0, "success", None)


@router.delete("")
async def clear_hot_searches(request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    await state.hot_searches.clear()
    return _envelope(0, "success", None)
