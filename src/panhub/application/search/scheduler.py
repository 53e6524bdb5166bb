"""Batch planning: one fast batch, then fixed-size deep batches."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from panhub.domain.entities.search import SourceFamily

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 16
FALLBACK_CONCURRENCY = 3


def clamp_concurrency(value: int | None) -> int:
    """Clamp to [1, 16]; missing or zero falls back to 3."""
    return min(MAX_CONCURRENCY, max(MIN_CONCURRENCY, int(value or FALLBACK_CONCURRENCY)))


def chunk(ids: Sequence[str], size: int) -> list[tuple[str, ...]]:
    if size <= 0:
        raise ValueError("chunk size must be > 0")
    return [tuple(ids[i : i + size]) for i in range(0, len(ids), size)]


@dataclass(frozen=True)
class Batch:
    """Source ids issued together: at most one call per family."""

    plugins: tuple[str, ...] = ()
    channels: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.plugins and not self.channels

    def groups(self) -> list[tuple[SourceFamily, tuple[str, ...]]]:
        out: list[tuple[SourceFamily, tuple[str, ...]]] = []
        if self.plugins:
            out.append((SourceFamily.PLUGIN, self.plugins))
        if self.channels:
            out.append((SourceFamily.CHANNEL, self.channels))
        return out


@dataclass(frozen=True)
class BatchPlan:
    concurrency: int
    fast: Batch
    deep: list[Batch] = field(default_factory=list)

    @property
    def source_count(self) -> int:
        batches = [self.fast, *self.deep]
        return sum(len(b.plugins) + len(b.channels) for b in batches)


def plan_batches(
    plugins: Sequence[str],
    channels: Sequence[str],
    concurrency: int | None,
) -> BatchPlan:
    """Partition enabled sources into the fast batch and deep batches.

    The fast batch takes the first ``C`` ids of each family. The rest of
    each family is chunked by ``C`` independently; deep batch ``i`` pairs
    plugin chunk ``i`` with channel chunk ``i`` where present.
    """
    size = clamp_concurrency(concurrency)

    fast = Batch(plugins=tuple(plugins[:size]), channels=tuple(channels[:size]))

    plugin_chunks = chunk(plugins[size:], size)
    channel_chunks = chunk(channels[size:], size)

    deep: list[Batch] = []
    for i in range(max(len(plugin_chunks), len(channel_chunks))):
        batch = Batch(
            plugins=plugin_chunks[i] if i < len(plugin_chunks) else (),
            channels=channel_chunks[i] if i < len(channel_chunks) else (),
        )
        if not batch.is_empty:
            deep.append(batch)

    return BatchPlan(concurrency=size, fast=fast, deep=deep)
