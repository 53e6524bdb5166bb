"""Registry of live search sessions driven in the background."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Callable, Coroutine
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import structlog

from panhub.application.search.orchestrator import SearchOrchestrator
from panhub.domain.entities.search import SearchSettings, SearchSnapshot

log = structlog.get_logger(__name__)


@dataclass
class SearchSession:
    session_id: str
    orchestrator: SearchOrchestrator
    _task: asyncio.Task[Any] | None = field(default=None, repr=False)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def snapshot(self) -> SearchSnapshot:
        return self.orchestrator.snapshot()


class SearchSessionRegistry:
    """Creates orchestrators and runs their commands as background tasks.

    The oldest session is evicted once ``max_sessions`` is exceeded.
    """

    def __init__(
        self,
        orchestrator_factory: Callable[[], SearchOrchestrator],
        *,
        max_sessions: int = 100,
    ) -> None:
        self._factory = orchestrator_factory
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, SearchSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> SearchSession | None:
        return self._sessions.get(session_id)

    async def create(self, keyword: str, settings: SearchSettings) -> SearchSession:
        session = SearchSession(session_id=uuid4().hex, orchestrator=self._factory())
        self._sessions[session.session_id] = session
        while len(self._sessions) > self._max_sessions:
            _, evicted = self._sessions.popitem(last=False)
            log.info("search_session_evicted", session_id=evicted.session_id)
            await self._close(evicted)

        self._spawn(session, session.orchestrator.start(keyword, settings))
        # Let the run reach its first await so the snapshot reflects it.
        await asyncio.sleep(0)
        log.info("search_session_created", session_id=session.session_id, keyword=keyword)
        return session

    async def resume(
        self, session: SearchSession, settings: SearchSettings | None = None
    ) -> None:
        self._spawn(session, session.orchestrator.resume(settings))
        await asyncio.sleep(0)

    async def remove(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await self._close(session)
        log.info("search_session_removed", session_id=session_id)
        return True

    async def aclose(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await self._close(session)

    def _spawn(
        self,
        session: SearchSession,
        coro: Coroutine[Any, Any, SearchSnapshot],
    ) -> None:
        session._task = asyncio.create_task(coro, name=f"search-session:{session.session_id}")

    async def _close(self, session: SearchSession) -> None:
        await session.orchestrator.aclose()
        task = session._task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
