"""Tests for SearchOrchestrator (phases, pause/resume, staleness)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from panhub.application.search.executor import RequestExecutor
from panhub.application.search.orchestrator import (
    EMPTY_KEYWORD_MESSAGE,
    NO_SOURCES_MESSAGE,
    SearchOrchestrator,
)
from panhub.domain.entities.search import (
    ResultItem,
    SearchPhase,
    SearchSettings,
    SearchSnapshot,
    SourceBatch,
    SourceFamily,
)

P = tuple(f"p{i}" for i in range(20))
FAST = P[0:4]
DEEP = [P[4:8], P[8:12], P[12:16], P[16:20]]


def _urls(snapshot: SearchSnapshot, type_: str = "movie") -> list[str]:
    return [i.url for i in snapshot.merged.get(type_, [])]


def _expected_urls(*batches: tuple[str, ...]) -> list[str]:
    return [f"https://pan.example/{sid}" for batch in batches for sid in batch]


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _ExplodingExecutor(RequestExecutor):
    """Raises from ``spawn`` on the n-th call."""

    def __init__(self, gateway, fail_on: int) -> None:
        super().__init__(gateway)
        self._n = 0
        self._fail_on = fail_on

    def spawn(self, *args, **kwargs):
        self._n += 1
        if self._n == self._fail_on:
            raise RuntimeError("boom")
        return super().spawn(*args, **kwargs)


@pytest.fixture()
def orchestrator(gateway) -> SearchOrchestrator:
    return SearchOrchestrator(RequestExecutor(gateway))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    async def test_empty_keyword(self, orchestrator, gateway, settings) -> None:
        snap = await orchestrator.start("", settings)

        assert snap.error == EMPTY_KEYWORD_MESSAGE
        assert snap.phase is SearchPhase.IDLE
        assert gateway.calls == []

    async def test_whitespace_keyword(self, orchestrator, gateway, settings) -> None:
        snap = await orchestrator.start("   ", settings)

        assert snap.error == EMPTY_KEYWORD_MESSAGE
        assert gateway.calls == []

    async def test_no_sources(self, orchestrator, gateway) -> None:
        snap = await orchestrator.start("foo", SearchSettings())

        assert snap.error == NO_SOURCES_MESSAGE
        assert snap.phase is SearchPhase.IDLE
        assert gateway.calls == []

    async def test_unknown_plugins_are_dropped(self, gateway) -> None:
        orch = SearchOrchestrator(RequestExecutor(gateway), known_plugins={"p0", "p1"})

        snap = await orch.start("foo", SearchSettings(enabled_plugins=("p0", "zzz", "p1")))

        assert snap.phase is SearchPhase.COMPLETED
        assert gateway.called_ids() == [("p0", "p1")]

    async def test_only_unknown_plugins_means_no_sources(self, gateway) -> None:
        orch = SearchOrchestrator(RequestExecutor(gateway), known_plugins={"p0"})

        snap = await orch.start("foo", SearchSettings(enabled_plugins=("zzz",)))

        assert snap.error == NO_SOURCES_MESSAGE
        assert gateway.calls == []

    async def test_rejected_search_keeps_previous_results(
        self, orchestrator, settings
    ) -> None:
        done = await orchestrator.start("foo", settings)
        snap = await orchestrator.start("", settings)

        assert snap.phase is SearchPhase.COMPLETED
        assert snap.total == done.total
        assert snap.generation == done.generation

    async def test_rejected_start_during_search_does_not_stick(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(DEEP[0])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[0])

        rejected = await orchestrator.start("", settings)
        assert rejected.error == EMPTY_KEYWORD_MESSAGE
        assert rejected.phase is SearchPhase.DEEP_LOADING

        gateway.release(DEEP[0])
        snap = await task

        assert snap.phase is SearchPhase.COMPLETED
        assert snap.error == ""
        assert snap.total == 20


# ---------------------------------------------------------------------------
# Full runs
# ---------------------------------------------------------------------------


class TestFullRun:
    async def test_completes_all_batches_in_order(
        self, orchestrator, gateway, settings
    ) -> None:
        snap = await orchestrator.start("foo", settings)

        assert snap.phase is SearchPhase.COMPLETED
        assert snap.searched
        assert snap.keyword == "foo"
        assert gateway.called_ids() == [FAST, *DEEP]
        assert _urls(snap) == _expected_urls(FAST, *DEEP)
        assert snap.total == 20
        assert snap.error == ""

    async def test_snapshot_merged_is_a_copy(self, orchestrator, settings) -> None:
        snap = await orchestrator.start("foo", settings)

        snap.merged["movie"].clear()
        snap.merged["extra"] = []

        fresh = orchestrator.snapshot()
        assert fresh.total == 20
        assert "extra" not in fresh.merged

    async def test_keyword_is_stripped(self, orchestrator, gateway, settings) -> None:
        await orchestrator.start("  foo  ", settings)
        assert {kw for _, _, kw in gateway.calls} == {"foo"}

    async def test_plugins_and_channels_share_batches(self, orchestrator, gateway) -> None:
        settings = SearchSettings(
            enabled_plugins=("p0", "p1", "p2"),
            enabled_channels=("c0", "c1", "c2", "c3", "c4"),
            concurrency=2,
        )
        await orchestrator.start("foo", settings)

        assert gateway.calls[0][:2] == (SourceFamily.PLUGIN, ("p0", "p1"))
        assert gateway.calls[1][:2] == (SourceFamily.CHANNEL, ("c0", "c1"))
        assert gateway.called_ids()[2:] == [("p2",), ("c2", "c3"), ("c4",)]

    async def test_failed_batch_does_not_abort(self, orchestrator, gateway, settings) -> None:
        gateway.failing.add(DEEP[1])

        snap = await orchestrator.start("foo", settings)

        assert snap.phase is SearchPhase.COMPLETED
        assert _urls(snap) == _expected_urls(FAST, DEEP[0], DEEP[2], DEEP[3])

    async def test_duplicates_across_batches_are_merged(self, orchestrator, gateway) -> None:
        a = ResultItem(url="a", type="movie")
        b = ResultItem(url="b", type="movie")
        gateway.responses[("p0",)] = {"movie": [a]}
        gateway.responses[("p1",)] = {"movie": [a, b]}

        snap = await orchestrator.start(
            "foo", SearchSettings(enabled_plugins=("p0", "p1"), concurrency=1)
        )

        assert _urls(snap) == ["a", "b"]

    async def test_phase_passes_through_fast_and_deep(self, gateway, settings) -> None:
        phases: list[SearchPhase] = []
        orch = SearchOrchestrator(
            RequestExecutor(gateway), on_change=lambda s: phases.append(s.phase)
        )

        await orch.start("foo", settings)

        assert phases[0] is SearchPhase.FAST_LOADING
        assert SearchPhase.DEEP_LOADING in phases
        assert phases[-1] is SearchPhase.COMPLETED

    async def test_results_grow_monotonically(self, gateway, settings) -> None:
        totals: list[int] = []
        orch = SearchOrchestrator(
            RequestExecutor(gateway), on_change=lambda s: totals.append(s.total)
        )

        await orch.start("foo", settings)

        assert totals == sorted(totals)
        assert totals[-1] == 20

    async def test_listener_errors_are_swallowed(self, gateway, settings) -> None:
        def _broken(_: SearchSnapshot) -> None:
            raise RuntimeError("listener")

        orch = SearchOrchestrator(RequestExecutor(gateway), on_change=_broken)
        snap = await orch.start("foo", settings)

        assert snap.phase is SearchPhase.COMPLETED

    async def test_new_search_starts_new_generation(
        self, orchestrator, settings
    ) -> None:
        first = await orchestrator.start("foo", settings)
        second = await orchestrator.start("bar", settings)

        assert second.generation > first.generation
        assert second.keyword == "bar"
        assert second.total == 20


# ---------------------------------------------------------------------------
# Pause / resume
# ---------------------------------------------------------------------------


class TestPauseResume:
    async def test_pause_before_first_deep_batch(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(DEEP[0])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[0])

        assert orchestrator.pause() is True
        snap = await task

        assert snap.phase is SearchPhase.PAUSED
        assert snap.paused_at_batch == 0
        assert _urls(snap) == _expected_urls(FAST)
        assert orchestrator.in_flight == 0

        gateway.release(DEEP[0])
        calls_before = len(gateway.calls)
        resumed = await orchestrator.resume()

        assert gateway.called_ids()[calls_before] == DEEP[0]
        assert resumed.phase is SearchPhase.COMPLETED
        assert _urls(resumed) == _expected_urls(FAST, *DEEP)

    async def test_resume_continues_at_next_batch(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(DEEP[2])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[2])
        orchestrator.pause()
        paused = await task

        assert paused.paused_at_batch == 2

        gateway.release(DEEP[2])
        calls_before = len(gateway.calls)
        resumed = await orchestrator.resume()

        assert gateway.called_ids()[calls_before:] == [DEEP[2], DEEP[3]]
        assert resumed.generation == paused.generation
        assert _urls(resumed) == _expected_urls(FAST, *DEEP)

    async def test_pause_during_fast_batch_reruns_it(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(FAST)
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(FAST)
        orchestrator.pause()
        paused = await task

        assert paused.phase is SearchPhase.PAUSED
        assert paused.total == 0

        gateway.release(FAST)
        resumed = await orchestrator.resume()

        assert gateway.called_ids().count(FAST) == 2
        assert resumed.phase is SearchPhase.COMPLETED
        assert resumed.total == 20

    async def test_pause_is_idempotent(self, orchestrator, gateway, settings) -> None:
        gateway.hold(DEEP[0])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[0])

        assert orchestrator.pause() is True
        first = orchestrator.snapshot()
        assert orchestrator.pause() is False
        second = orchestrator.snapshot()
        await task

        assert first.phase is second.phase is SearchPhase.PAUSED
        assert first.paused_at_batch == second.paused_at_batch

    async def test_pause_when_idle_or_completed_is_noop(
        self, orchestrator, settings
    ) -> None:
        assert orchestrator.pause() is False
        await orchestrator.start("foo", settings)
        assert orchestrator.pause() is False
        assert orchestrator.phase is SearchPhase.COMPLETED

    async def test_resume_when_not_paused_is_noop(
        self, orchestrator, gateway, settings
    ) -> None:
        idle = await orchestrator.resume()
        assert idle.phase is SearchPhase.IDLE

        await orchestrator.start("foo", settings)
        calls = len(gateway.calls)
        snap = await orchestrator.resume()

        assert snap.phase is SearchPhase.COMPLETED
        assert len(gateway.calls) == calls

    async def test_no_batch_skipped_or_duplicated_across_pauses(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(DEEP[1])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[1])
        orchestrator.pause()
        await task
        gateway.release(DEEP[1])

        gateway.hold(DEEP[3])
        task = asyncio.create_task(orchestrator.resume())
        await gateway.wait_for_call(DEEP[3])
        orchestrator.pause()
        await task
        gateway.release(DEEP[3])

        snap = await orchestrator.resume()

        urls = _urls(snap)
        assert snap.phase is SearchPhase.COMPLETED
        assert len(urls) == len(set(urls)) == 20

    async def test_resume_with_new_settings_replans(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(DEEP[0])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[0])
        orchestrator.pause()
        await task
        gateway.release(DEEP[0])

        calls_before = len(gateway.calls)
        snap = await orchestrator.resume(
            SearchSettings(enabled_plugins=P[:12], concurrency=4)
        )

        assert gateway.called_ids()[calls_before:] == [P[4:8], P[8:12]]
        assert snap.phase is SearchPhase.COMPLETED
        assert orchestrator.settings is not None
        assert orchestrator.settings.enabled_plugins == P[:12]

    async def test_resume_with_larger_concurrency_fetches_every_source(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(DEEP[1])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[1])
        orchestrator.pause()
        await task
        gateway.release(DEEP[1])

        calls_before = len(gateway.calls)
        snap = await orchestrator.resume(SearchSettings(enabled_plugins=P, concurrency=8))

        assert gateway.called_ids()[calls_before:] == [P[8:16], P[16:20]]
        assert snap.phase is SearchPhase.COMPLETED
        assert sorted(_urls(snap)) == sorted(_expected_urls(P))

    async def test_resume_with_smaller_concurrency_skips_finished_sources(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(DEEP[1])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[1])
        orchestrator.pause()
        await task
        gateway.release(DEEP[1])

        calls_before = len(gateway.calls)
        snap = await orchestrator.resume(SearchSettings(enabled_plugins=P, concurrency=2))

        assert gateway.called_ids()[calls_before:] == [P[i : i + 2] for i in range(8, 20, 2)]
        assert snap.phase is SearchPhase.COMPLETED
        assert snap.total == 20

    async def test_rejected_resume_then_valid_resume_clears_error(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(DEEP[0])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[0])
        orchestrator.pause()
        await task
        gateway.release(DEEP[0])

        rejected = await orchestrator.resume(SearchSettings())
        assert rejected.error == NO_SOURCES_MESSAGE

        snap = await orchestrator.resume()

        assert snap.phase is SearchPhase.COMPLETED
        assert snap.error == ""

    async def test_resume_with_invalid_settings_stays_paused(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(DEEP[0])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[0])
        orchestrator.pause()
        await task

        snap = await orchestrator.resume(SearchSettings())

        assert snap.phase is SearchPhase.PAUSED
        assert snap.error == NO_SOURCES_MESSAGE

    async def test_straggler_from_paused_batch_is_not_duplicated(self, settings) -> None:
        gate = asyncio.Event()
        calls: list[tuple[str, ...]] = []

        class _Stubborn:
            async def fetch(self, family, source_ids, keyword, *, concurrency, plugin_timeout_ms):
                ids = tuple(source_ids)
                calls.append(ids)
                if ids == DEEP[0] and calls.count(ids) == 1:
                    try:
                        await gate.wait()
                    except asyncio.CancelledError:
                        pass
                return SourceBatch(
                    family=family,
                    source_ids=ids,
                    merged_by_type={
                        "movie": [ResultItem(url=f"u-{sid}", type="movie") for sid in ids]
                    },
                )

        orch = SearchOrchestrator(RequestExecutor(_Stubborn()))
        task = asyncio.create_task(orch.start("foo", settings))
        for _ in range(100):
            if DEEP[0] in calls:
                break
            await asyncio.sleep(0)
        orch.pause()
        await task

        snap = await orch.resume()

        urls = _urls(snap)
        assert snap.phase is SearchPhase.COMPLETED
        assert len(urls) == len(set(urls)) == 20


# ---------------------------------------------------------------------------
# Reset / staleness
# ---------------------------------------------------------------------------


class TestReset:
    async def test_reset_during_deep_batch_discards_late_results(
        self, orchestrator, gateway, settings
    ) -> None:
        gateway.hold(DEEP[2])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[2])
        before = orchestrator.generation

        orchestrator.reset()
        gateway.release(DEEP[2])
        await task

        snap = orchestrator.snapshot()
        assert snap.phase is SearchPhase.IDLE
        assert snap.merged == {}
        assert snap.generation == before + 1
        assert not snap.searched
        assert DEEP[3] not in gateway.called_ids()

    async def test_straggler_after_reset_is_discarded(self, settings) -> None:
        gate = asyncio.Event()
        calls: list[tuple[str, ...]] = []

        class _Stubborn:
            async def fetch(self, family, source_ids, keyword, *, concurrency, plugin_timeout_ms):
                ids = tuple(source_ids)
                calls.append(ids)
                if ids == DEEP[2]:
                    try:
                        await gate.wait()
                    except asyncio.CancelledError:
                        pass
                return SourceBatch(
                    family=family,
                    source_ids=ids,
                    merged_by_type={"movie": [ResultItem(url="late", type="movie")]},
                )

        orch = SearchOrchestrator(RequestExecutor(_Stubborn()))
        task = asyncio.create_task(orch.start("foo", settings))
        for _ in range(100):
            if DEEP[2] in calls:
                break
            await asyncio.sleep(0)

        orch.reset()
        await task

        snap = orch.snapshot()
        assert snap.phase is SearchPhase.IDLE
        assert snap.merged == {}

    async def test_new_search_supersedes_running_one(self, orchestrator, gateway, settings) -> None:
        gateway.hold(DEEP[1])
        first = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[1])

        gateway.release(DEEP[1])
        second = await orchestrator.start("bar", SearchSettings(enabled_plugins=("x",)))
        await first

        assert second.keyword == "bar"
        assert second.phase is SearchPhase.COMPLETED
        assert _urls(orchestrator.snapshot()) == ["https://pan.example/x"]

    async def test_reset_when_idle(self, orchestrator) -> None:
        orchestrator.reset()
        assert orchestrator.phase is SearchPhase.IDLE
        assert orchestrator.generation == 1


# ---------------------------------------------------------------------------
# Errors, elapsed time, side effects
# ---------------------------------------------------------------------------


class TestErrors:
    async def test_unexpected_failure_keeps_partial_results(self, gateway, settings) -> None:
        orch = SearchOrchestrator(_ExplodingExecutor(gateway, fail_on=2))

        snap = await orch.start("foo", settings)

        assert snap.phase is SearchPhase.ERROR
        assert snap.error == "boom"
        assert _urls(snap) == _expected_urls(FAST)


class TestElapsed:
    async def test_paused_time_is_excluded(self, gateway, settings) -> None:
        clock = _FakeClock()
        orch = SearchOrchestrator(RequestExecutor(gateway), clock=clock)
        gateway.hold(DEEP[0])

        task = asyncio.create_task(orch.start("foo", settings))
        await gateway.wait_for_call(DEEP[0])
        clock.now = 1.5
        orch.pause()
        await task

        clock.now = 100.0
        assert orch.snapshot().elapsed_ms == 1500

        gateway.release(DEEP[0])
        snap = await orch.resume()
        assert snap.elapsed_ms == 1500

    async def test_elapsed_frozen_after_completion(self, gateway, settings) -> None:
        clock = _FakeClock()
        orch = SearchOrchestrator(RequestExecutor(gateway), clock=clock)

        snap = await orch.start("foo", settings)
        clock.now = 42.0

        assert snap.elapsed_ms == 0
        assert orch.snapshot().elapsed_ms == 0


class TestHotSearchRecording:
    async def test_recorded_on_completion(self, gateway, settings, mock_hot_searches) -> None:
        orch = SearchOrchestrator(RequestExecutor(gateway), hot_searches=mock_hot_searches)

        await orch.start("foo", settings)

        mock_hot_searches.record_search.assert_awaited_once_with("foo")

    async def test_not_recorded_when_paused(self, gateway, settings, mock_hot_searches) -> None:
        orch = SearchOrchestrator(RequestExecutor(gateway), hot_searches=mock_hot_searches)
        gateway.hold(DEEP[0])
        task = asyncio.create_task(orch.start("foo", settings))
        await gateway.wait_for_call(DEEP[0])
        orch.pause()
        await task

        mock_hot_searches.record_search.assert_not_awaited()

    async def test_store_failure_does_not_fail_search(self, gateway, settings) -> None:
        store = AsyncMock()
        store.record_search = AsyncMock(side_effect=RuntimeError("disk full"))
        orch = SearchOrchestrator(RequestExecutor(gateway), hot_searches=store)

        snap = await orch.start("foo", settings)

        assert snap.phase is SearchPhase.COMPLETED


class TestCopyLink:
    async def test_copies_via_clipboard(self, gateway) -> None:
        clipboard = AsyncMock()
        orch = SearchOrchestrator(RequestExecutor(gateway), clipboard=clipboard)

        assert await orch.copy_link("https://pan.example/1") is True
        clipboard.copy.assert_awaited_once_with("https://pan.example/1")

    async def test_never_raises(self, gateway) -> None:
        clipboard = AsyncMock()
        clipboard.copy = AsyncMock(side_effect=OSError("no display"))
        orch = SearchOrchestrator(RequestExecutor(gateway), clipboard=clipboard)

        assert await orch.copy_link("https://pan.example/1") is False

    async def test_without_clipboard(self, orchestrator) -> None:
        assert await orchestrator.copy_link("https://pan.example/1") is False


class TestClose:
    async def test_aclose_stops_running_search(self, orchestrator, gateway, settings) -> None:
        gateway.hold(DEEP[0])
        task = asyncio.create_task(orchestrator.start("foo", settings))
        await gateway.wait_for_call(DEEP[0])

        await orchestrator.aclose()

        assert orchestrator.in_flight == 0
        with pytest.raises(asyncio.CancelledError):
            await task
