"""Search orchestration state machine.

idle -> fast_loading -> deep_loading -> {paused | completed | error}
paused -> deep_loading (resume), any -> idle (reset / new search)

All state lives on the event loop thread. The generation counter is the
only correctness mechanism against stale responses: results are merged
only while the token a run was spawned under is still current.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Collection
from contextlib import suppress
from dataclasses import dataclass, replace

import structlog

from panhub.application.search.executor import InFlightCall, RequestExecutor
from panhub.application.search.generation import GenerationCounter
from panhub.application.search.merger import count_total, merge_by_type
from panhub.application.search.scheduler import Batch, BatchPlan, clamp_concurrency, plan_batches
from panhub.domain.entities.search import (
    EmptyKeywordError,
    MergedResults,
    NoSourcesEnabledError,
    SearchPhase,
    SearchSettings,
    SearchSnapshot,
    SearchValidationError,
    SourceBatch,
)
from panhub.domain.ports.clipboard import ClipboardPort
from panhub.domain.ports.hot_search_store import HotSearchStorePort

log = structlog.get_logger(__name__)

EMPTY_KEYWORD_MESSAGE = "please enter a search keyword"
NO_SOURCES_MESSAGE = "please select at least one search source in settings"

ChangeListener = Callable[[SearchSnapshot], None]


@dataclass(frozen=True)
class _Settled:
    batches: list[SourceBatch]
    interrupted: bool


class SearchOrchestrator:
    """Runs one logical search at a time over batched source calls.

    ``start()`` and ``resume()`` return once the run reaches a resting
    phase (paused, completed, error) or is superseded. Neither raises for
    search failures; the outcome is read from ``snapshot()``.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        *,
        known_plugins: Collection[str] | None = None,
        hot_searches: HotSearchStorePort | None = None,
        clipboard: ClipboardPort | None = None,
        on_change: ChangeListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._executor = executor
        self._known_plugins = frozenset(known_plugins) if known_plugins is not None else None
        self._hot_searches = hot_searches
        self._clipboard = clipboard
        self._on_change = on_change
        self._clock = clock

        self._generation = GenerationCounter()
        self._inflight: set[InFlightCall] = set()
        self._run_task: asyncio.Task[None] | None = None
        self._clear_state()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation.current

    @property
    def phase(self) -> SearchPhase:
        return self._phase

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    @property
    def plan(self) -> BatchPlan | None:
        return self._plan

    @property
    def settings(self) -> SearchSettings | None:
        """Validated settings of the current search, None while idle."""
        return self._settings

    def snapshot(self) -> SearchSnapshot:
        return SearchSnapshot(
            generation=self._generation.current,
            phase=self._phase,
            keyword=self._keyword,
            paused_at_batch=self._next_batch,
            merged={type_: list(items) for type_, items in self._merged.items()},
            error=self._error,
            elapsed_ms=self._elapsed_ms(),
            searched=self._searched,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self, keyword: str, settings: SearchSettings) -> SearchSnapshot:
        keyword = (keyword or "").strip()
        try:
            settings = self._prepare(keyword, settings)
        except SearchValidationError as exc:
            self._error = str(exc)
            log.info("search_rejected", reason=self._error)
            self._notify()
            return self.snapshot()

        cancelled = self._cancel_inflight()
        token = self._generation.begin()
        self._clear_state()
        self._keyword = keyword
        self._settings = settings
        self._plan = plan_batches(
            settings.enabled_plugins, settings.enabled_channels, settings.concurrency
        )
        self._searched = True
        self._fast_pending = True
        self._phase = SearchPhase.FAST_LOADING
        self._start_clock()

        log.info(
            "search_started",
            generation=token,
            keyword=keyword,
            plugins=len(settings.enabled_plugins),
            channels=len(settings.enabled_channels),
            concurrency=self._plan.concurrency,
            deep_batches=len(self._plan.deep),
            superseded_calls=cancelled,
        )
        self._notify()

        self._run_task = asyncio.create_task(self._run(token), name=f"search-run:{token}")
        await self._run_task
        return self.snapshot()

    def pause(self) -> bool:
        """Stop scheduling and cancel live calls. No-op unless loading."""
        if not self._phase.is_running:
            return False

        self._phase = SearchPhase.PAUSED
        self._stop_clock()
        cancelled = self._cancel_inflight()
        log.info(
            "search_paused",
            generation=self._generation.current,
            next_batch=self._next_batch,
            fast_pending=self._fast_pending,
            cancelled_calls=cancelled,
        )
        self._notify()
        return True

    async def resume(self, settings: SearchSettings | None = None) -> SearchSnapshot:
        """Continue a paused search under the same generation.

        Continues at the next unexecuted deep batch. A batch cut short by
        the pause is issued again; an interrupted fast batch runs first.
        New *settings* re-plan only the sources no finished batch covered.
        """
        if self._phase is not SearchPhase.PAUSED or not self._searched:
            return self.snapshot()

        previous = self._run_task
        if previous is not None and not previous.done():
            # Its calls were cancelled by pause(); wait for it to settle
            # so the batch cursor is final before continuing.
            await previous

        if self._phase is not SearchPhase.PAUSED:
            return self.snapshot()

        if settings is not None:
            try:
                settings = self._prepare(self._keyword, settings)
            except SearchValidationError as exc:
                self._error = str(exc)
                log.info("resume_rejected", reason=self._error)
                self._notify()
                return self.snapshot()
            self._settings = settings
            self._plan = self._replan_remaining(settings)
            self._next_batch = 0
        self._error = ""

        token = self._generation.current
        self._phase = (
            SearchPhase.FAST_LOADING if self._fast_pending else SearchPhase.DEEP_LOADING
        )
        self._start_clock()
        log.info("search_resumed", generation=token, next_batch=self._next_batch)
        self._notify()

        self._run_task = asyncio.create_task(self._run(token), name=f"search-run:{token}")
        await self._run_task
        return self.snapshot()

    def reset(self) -> None:
        """Cancel everything, start a new generation, return to idle."""
        cancelled = self._cancel_inflight()
        token = self._generation.begin()
        self._clear_state()
        log.info("search_reset", generation=token, cancelled_calls=cancelled)
        self._notify()

    async def copy_link(self, url: str) -> bool:
        """Best-effort copy of *url* to the clipboard. Never raises."""
        if self._clipboard is None:
            return False
        try:
            await self._clipboard.copy(url)
        except Exception:
            log.debug("copy_link_failed", url=url, exc_info=True)
            return False
        return True

    async def aclose(self) -> None:
        """Cancel in-flight work and wait for the current run to settle."""
        self._cancel_inflight()
        self._generation.begin()
        task = self._run_task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(self, token: int) -> None:
        plan = self._plan
        assert plan is not None

        try:
            if self._fast_pending:
                settled = await self._execute(plan.fast)
                if not self._generation.is_current(token):
                    log.debug("stale_fast_batch_discarded", generation=token)
                    return
                self._publish(settled.batches, token)
                if not settled.interrupted:
                    self._fast_pending = False
                    self._mark_done(plan.fast)
                if self._phase is not SearchPhase.FAST_LOADING:
                    return
                self._phase = SearchPhase.DEEP_LOADING
                self._notify()

            while self._next_batch < len(plan.deep):
                if not self._should_continue(token):
                    return
                index = self._next_batch
                settled = await self._execute(plan.deep[index])
                if not self._generation.is_current(token):
                    log.debug("stale_deep_batch_discarded", generation=token, batch=index)
                    return
                self._publish(settled.batches, token)
                if not settled.interrupted:
                    self._mark_done(plan.deep[index])
                    self._next_batch = index + 1

            if not self._should_continue(token):
                return
            self._finish(SearchPhase.COMPLETED)
        except Exception as exc:
            if not self._generation.is_current(token):
                log.debug("stale_run_failed", generation=token, exc_info=True)
                return
            log.error("search_failed", generation=token, exc_info=True)
            self._error = str(exc) or type(exc).__name__
            self._finish(SearchPhase.ERROR)
            return

        await self._record_hot_search(self._keyword)

    async def _execute(self, batch: Batch) -> _Settled:
        settings = self._settings
        plan = self._plan
        assert settings is not None and plan is not None

        calls = [
            self._executor.spawn(
                family,
                ids,
                self._keyword,
                concurrency=plan.concurrency,
                plugin_timeout_ms=settings.plugin_timeout_ms,
            )
            for family, ids in batch.groups()
        ]
        self._inflight.update(calls)
        try:
            results = await asyncio.gather(*(call.result() for call in calls))
        finally:
            self._inflight.difference_update(calls)

        return _Settled(
            batches=[r for r in results if r is not None],
            interrupted=any(call.cancelled for call in calls),
        )

    def _publish(self, batches: list[SourceBatch], token: int) -> None:
        merged: MergedResults = self._merged
        for batch in batches:
            merged = merge_by_type(merged, batch.merged_by_type)
        if not self._generation.is_current(token):
            return
        self._merged = merged
        log.debug(
            "results_published",
            generation=token,
            batches=len(batches),
            total=count_total(merged),
        )
        self._notify()

    def _finish(self, phase: SearchPhase) -> None:
        self._stop_clock()
        self._phase = phase
        if phase is SearchPhase.COMPLETED:
            # Drop messages of commands rejected while this search ran.
            self._error = ""
        log.info(
            "search_finished",
            generation=self._generation.current,
            phase=phase.value,
            total=count_total(self._merged),
            elapsed_ms=self._elapsed_ms(),
            error=self._error or None,
        )
        self._notify()

    async def _record_hot_search(self, keyword: str) -> None:
        if self._hot_searches is None:
            return
        try:
            await self._hot_searches.record_search(keyword)
        except Exception:
            log.warning("hot_search_record_failed", keyword=keyword, exc_info=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prepare(self, keyword: str, settings: SearchSettings) -> SearchSettings:
        if not keyword:
            raise EmptyKeywordError(EMPTY_KEYWORD_MESSAGE)

        plugins = tuple(
            name
            for name in settings.enabled_plugins
            if self._known_plugins is None or name in self._known_plugins
        )
        channels = tuple(settings.enabled_channels)
        if not plugins and not channels:
            raise NoSourcesEnabledError(NO_SOURCES_MESSAGE)

        return replace(
            settings,
            enabled_plugins=plugins,
            enabled_channels=channels,
            concurrency=clamp_concurrency(settings.concurrency),
        )

    def _mark_done(self, batch: Batch) -> None:
        self._done_plugins.update(batch.plugins)
        self._done_channels.update(batch.channels)

    def _replan_remaining(self, settings: SearchSettings) -> BatchPlan:
        """Plan only the sources no finished batch has covered yet.

        The result is run from deep batch 0. Once the fast batch has
        finished, the first chunk of the remaining ids becomes deep batch 0.
        """
        plan = plan_batches(
            [p for p in settings.enabled_plugins if p not in self._done_plugins],
            [c for c in settings.enabled_channels if c not in self._done_channels],
            settings.concurrency,
        )
        if self._fast_pending:
            return plan
        head = [] if plan.fast.is_empty else [plan.fast]
        return BatchPlan(concurrency=plan.concurrency, fast=Batch(), deep=head + plan.deep)

    def _should_continue(self, token: int) -> bool:
        return self._generation.is_current(token) and self._phase.is_running

    def _cancel_inflight(self) -> int:
        cancelled = sum(1 for call in list(self._inflight) if call.cancel())
        self._inflight.clear()
        return cancelled

    def _clear_state(self) -> None:
        self._phase = SearchPhase.IDLE
        self._keyword = ""
        self._settings: SearchSettings | None = None
        self._plan: BatchPlan | None = None
        self._merged: MergedResults = {}
        self._error = ""
        self._searched = False
        self._next_batch = 0
        self._fast_pending = False
        self._done_plugins: set[str] = set()
        self._done_channels: set[str] = set()
        self._elapsed = 0.0
        self._active_since: float | None = None

    def _start_clock(self) -> None:
        if self._active_since is None:
            self._active_since = self._clock()

    def _stop_clock(self) -> None:
        if self._active_since is not None:
            self._elapsed += self._clock() - self._active_since
            self._active_since = None

    def _elapsed_ms(self) -> int:
        elapsed = self._elapsed
        if self._active_since is not None:
            elapsed += self._clock() - self._active_since
        return int(round(elapsed * 1000))

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.snapshot())
        except Exception:
            log.warning("search_listener_error", exc_info=True)
