"""Persisted search settings."""

from __future__ import annotations

from typing import Any, cast

import structlog
from fastapi import APIRouter, Request

from panhub.interfaces.api.settings.models import SettingsPayload
from panhub.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
async def get_settings(request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    settings = await state.settings_store.load()
    return settings.to_dict()


@router.put("")
async def update_settings(payload: SettingsPayload, request: Request) -> dict[str, Any]:
    """Merge *payload* over the stored settings and persist the result."""
    state = cast(AppState, request.app.state)
    current = await state.settings_store.load()
    saved = await state.settings_store.save(payload.apply(current))
    log.info("settings_updated", fields=sorted(payload.model_fields_set))
    return saved.to_dict()


@router.post("/reset")
async def reset_settings(request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    settings = await state.settings_store.reset_to_default()
    return settings.to_dict()


@router.post("/plugins/select-all")
async def select_all_plugins(request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    return (await state.settings_store.select_all_plugins()).to_dict()


@router.post("/plugins/clear")
async def clear_plugins(request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    return (await state.settings_store.clear_plugins()).to_dict()


@router.post("/channels/select-all")
async def select_all_channels(request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    return (await state.settings_store.select_all_channels()).to_dict()


@router.post("/channels/clear")
async def clear_channels(request: Request) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    return (await state.settings_store.clear_channels()).to_dict()
