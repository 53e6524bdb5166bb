"""Cancellable per-batch request execution.

One executor call issues exactly one remote request for one
(source family, batch) pair. Every failure mode (transport error, local
timeout, error-coded envelope, explicit cancellation) resolves to
``None`` so a broken source group never aborts the whole search.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import Protocol

import structlog

from panhub.domain.entities.search import SourceBatch, SourceFamily
from panhub.domain.ports.source_gateway import SourceGatewayPort

log = structlog.get_logger(__name__)

# Extra local wait on top of the per-source timeout so the remote endpoint
# can still answer with whatever finished in time.
DEFAULT_TIMEOUT_SLACK_MS = 2000


class _MetricsRecorder(Protocol):
    """Records source call metrics."""

    def record_source_call(
        self,
        family: str,
        duration_ns: int,
        result_count: int,
        *,
        success: bool,
    ) -> None: ...


class InFlightCall:
    """Handle for one running remote call.

    ``cancel()`` is idempotent: cancelling twice or after completion is a
    no-op. ``result()`` never raises for cancellation of this call.
    """

    def __init__(
        self,
        family: SourceFamily,
        source_ids: tuple[str, ...],
        task: asyncio.Task[SourceBatch | None],
    ) -> None:
        self.family = family
        self.source_ids = source_ids
        self._task = task
        self._cancel_requested = False

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancelled(self) -> bool:
        """True when this call was stopped by ``cancel()`` before settling."""
        return self._cancel_requested

    def cancel(self) -> bool:
        if self._cancel_requested or self._task.done():
            return False
        self._cancel_requested = True
        self._task.cancel()
        return True

    async def result(self) -> SourceBatch | None:
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._cancel_requested:
                return None
            raise


class RequestExecutor:
    """Spawns one ``InFlightCall`` per (family, batch) pair."""

    def __init__(
        self,
        gateway: SourceGatewayPort,
        *,
        timeout_slack_ms: int = DEFAULT_TIMEOUT_SLACK_MS,
        metrics: _MetricsRecorder | None = None,
    ) -> None:
        self._gateway = gateway
        self._timeout_slack_ms = timeout_slack_ms
        self._metrics = metrics

    def spawn(
        self,
        family: SourceFamily,
        source_ids: Sequence[str],
        keyword: str,
        *,
        concurrency: int,
        plugin_timeout_ms: int,
    ) -> InFlightCall:
        ids = tuple(source_ids)
        task = asyncio.create_task(
            self._call(
                family,
                ids,
                keyword,
                concurrency=concurrency,
                plugin_timeout_ms=plugin_timeout_ms,
            ),
            name=f"source-call:{family.value}:{','.join(ids)}",
        )
        return InFlightCall(family, ids, task)

    async def _call(
        self,
        family: SourceFamily,
        source_ids: tuple[str, ...],
        keyword: str,
        *,
        concurrency: int,
        plugin_timeout_ms: int,
    ) -> SourceBatch | None:
        timeout = (plugin_timeout_ms + self._timeout_slack_ms) / 1000.0
        t0 = time.perf_counter_ns()
        batch: SourceBatch | None = None
        try:
            batch = await asyncio.wait_for(
                self._gateway.fetch(
                    family,
                    source_ids,
                    keyword,
                    concurrency=concurrency,
                    plugin_timeout_ms=plugin_timeout_ms,
                ),
                timeout=timeout,
            )
        except TimeoutError:
            log.warning(
                "source_call_timeout",
                family=family.value,
                sources=list(source_ids),
                timeout=timeout,
            )
        except Exception:
            log.warning(
                "source_call_error",
                family=family.value,
                sources=list(source_ids),
                exc_info=True,
            )
        except BaseException:
            log.debug("source_call_cancelled", family=family.value, sources=list(source_ids))
            raise
        finally:
            if self._metrics is not None:
                count = (
                    sum(len(items) for items in batch.merged_by_type.values())
                    if batch is not None
                    else 0
                )
                self._metrics.record_source_call(
                    family.value,
                    time.perf_counter_ns() - t0,
                    count,
                    success=batch is not None,
                )

        log.debug(
            "source_call_done",
            family=family.value,
            sources=list(source_ids),
            ok=batch is not None,
        )
        return batch
