"""Incremental dedup-merge of type-bucketed results."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from panhub.domain.entities.search import MergedResults, ResultItem


def merge_by_type(
    accumulated: Mapping[str, list[ResultItem]],
    incoming: Mapping[str, Iterable[ResultItem]] | None,
) -> MergedResults:
    """Fold *incoming* buckets into a copy of *accumulated*.

    Per type bucket, items whose url was already seen are dropped; new
    items are appended in the order they arrive. Existing items are never
    removed or reordered and *accumulated* is left untouched, so the
    caller decides whether the returned mapping gets published.
    """
    out: MergedResults = {type_: list(items) for type_, items in accumulated.items()}
    if not incoming:
        return out

    for type_, items in incoming.items():
        bucket = out.get(type_, [])
        seen = {item.url for item in bucket}
        for item in items:
            if item.url in seen:
                continue
            seen.add(item.url)
            bucket.append(item)
        out[type_] = bucket
    return out


def count_total(merged: Mapping[str, list[ResultItem]]) -> int:
    return sum(len(items) for items in merged.values())
