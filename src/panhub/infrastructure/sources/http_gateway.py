"""Aggregated search endpoint client (httpx)."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from panhub.domain.entities.search import MergedResults, ResultItem, SourceBatch, SourceFamily

log = structlog.get_logger(__name__)

RESULT_SHAPE = "merged_by_type"


def build_search_params(
    family: SourceFamily,
    source_ids: Sequence[str],
    keyword: str,
    *,
    concurrency: int,
    plugin_timeout_ms: int,
) -> dict[str, Any]:
    """Query parameters for one ``GET {api_base}/search`` call."""
    return {
        "kw": keyword,
        "res": RESULT_SHAPE,
        "src": family.wire_name,
        family.ids_param: ",".join(source_ids),
        "conc": concurrency,
        "ext": json.dumps({"__plugin_timeout_ms": plugin_timeout_ms}),
    }


def parse_merged_by_type(payload: Any) -> MergedResults | None:
    """Extract ``data.merged_by_type`` from a response envelope.

    Returns None unless the envelope has ``code == 0`` and the buckets
    are a mapping of lists. Individual items without a url are skipped.
    """
    if not isinstance(payload, dict) or payload.get("code") != 0:
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    buckets = data.get(RESULT_SHAPE)
    if buckets is None:
        return {}
    if not isinstance(buckets, dict):
        return None

    merged: MergedResults = {}
    for type_, raw_items in buckets.items():
        if not isinstance(raw_items, list):
            log.debug("source_bucket_skipped", type=type_)
            continue
        items: list[ResultItem] = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                continue
            try:
                items.append(ResultItem.from_mapping(str(type_), raw))
            except ValueError:
                log.debug("source_item_skipped", type=type_)
        merged[str(type_)] = items
    return merged


class HttpxSourceGateway:
    """Implements ``SourceGatewayPort`` over a shared ``httpx.AsyncClient``.

    HTTP and transport errors are logged and mapped to None like any
    other non-conforming response.
    """

    def __init__(self, *, http_client: httpx.AsyncClient, api_base: str) -> None:
        self._http = http_client
        self._url = f"{api_base.rstrip('/')}/search"

    async def fetch(
        self,
        family: SourceFamily,
        source_ids: Sequence[str],
        keyword: str,
        *,
        concurrency: int,
        plugin_timeout_ms: int,
    ) -> SourceBatch | None:
        params = build_search_params(
            family,
            source_ids,
            keyword,
            concurrency=concurrency,
            plugin_timeout_ms=plugin_timeout_ms,
        )
        try:
            resp = await self._http.get(self._url, params=params)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError:
            log.warning(
                "source_http_error",
                family=family.value,
                sources=list(source_ids),
                exc_info=True,
            )
            return None
        except httpx.HTTPError:
            log.warning(
                "source_network_error",
                family=family.value,
                sources=list(source_ids),
                exc_info=True,
            )
            return None
        except ValueError:
            log.warning("source_invalid_json", family=family.value, sources=list(source_ids))
            return None

        merged = parse_merged_by_type(payload)
        if merged is None:
            log.warning(
                "source_bad_envelope",
                family=family.value,
                sources=list(source_ids),
                code=payload.get("code") if isinstance(payload, dict) else None,
                message=payload.get("message") if isinstance(payload, dict) else None,
            )
            return None

        return SourceBatch(family=family, source_ids=tuple(source_ids), merged_by_type=merged)
