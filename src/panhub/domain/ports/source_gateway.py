"""Port for the remote per-batch search endpoint."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from panhub.domain.entities.search import SourceBatch, SourceFamily


@runtime_checkable
class SourceGatewayPort(Protocol):
    """Issues one aggregated search call for a batch of source ids.

    Returns ``None`` for any non-conforming or error-coded response.
    Transport failures may raise; the request executor absorbs them.
    """

    async def fetch(
        self,
        family: SourceFamily,
        source_ids: Sequence[str],
        keyword: str,
        *,
        concurrency: int,
        plugin_timeout_ms: int,
    ) -> SourceBatch | None: ...
