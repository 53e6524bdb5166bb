"""Search session endpoints.

A session owns one orchestrator. Searches run as background tasks; the
client polls ``GET /search/sessions/{id}`` for the snapshot.
"""

from __future__ import annotations

from typing import Any, cast

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from panhub.application.search import SearchSession
from panhub.interfaces.api.settings.models import SettingsPayload
from panhub.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/search/sessions", tags=["search"])


class StartSearchRequest(BaseModel):
    keyword: str = ""
    settings: SettingsPayload | None = None


class ResumeSearchRequest(BaseModel):
    settings: SettingsPayload | None = None


def _session_body(session: SearchSession, **extra: Any) -> dict[str, Any]:
    return {
        "session_id": session.session_id,
        "running": session.running,
        **extra,
        "snapshot": session.snapshot().to_dict(),
    }


def _get_session(state: AppState, session_id: str) -> SearchSession:
    session = state.sessions.get(session_id)
    if session is None:
        log.warning("search_session_not_found", session_id=session_id)
        raise HTTPException(status_code=404, detail=f"Search session not found: {session_id}")
    return session


@router.post("", status_code=202)
async def start_search(body: StartSearchRequest, request: Request) -> dict[str, Any]:
    """Start a search in a new session.

    Settings default to the persisted ones; fields given in the body
    override them for this search only. Validation problems (empty
    keyword, no sources) are reported in ``snapshot.error``.
    """
    state = cast(AppState, request.app.state)
    settings = await state.settings_store.load()
    if body.settings is not None:
        settings = body.settings.apply(settings)

    session = await state.sessions.create(body.keyword, settings)
    return _session_body(session)


@router.get("/{session_id}")
async def get_search(session_id: str, request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    return _session_body(_get_session(state, session_id))


@router.post("/{session_id}/pause")
async def pause_search(session_id: str, request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    session = _get_session(state, session_id)
    paused = session.orchestrator.pause()
    return _session_body(session, paused=paused)


@router.post("/{session_id}/resume")
async def resume_search(
    session_id: str,
    request: Request,
    body: ResumeSearchRequest | None = None,
) -> dict[str, Any]:
    """Resume a paused search, optionally with changed settings."""
    state = cast(AppState, request.app.state)
    session = _get_session(state, session_id)

    settings = None
    if body is not None and body.settings is not None:
        base = session.orchestrator.settings or await state.settings_store.load()
        settings = body.settings.apply(base)

    await state.sessions.resume(session, settings)
    return _session_body(session)


@router.post("/{session_id}/reset")
async def reset_search(session_id: str, request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    session = _get_session(state, session_id)
    session.orchestrator.reset()
    return _session_body(session)


@router.delete("/{session_id}")
async def delete_search(session_id: str, request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    if not await state.sessions.remove(session_id):
        raise HTTPException(status_code=404, detail=f"Search session not found: {session_id}")
    return {"session_id": session_id, "deleted": True}
