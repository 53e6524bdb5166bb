"""Hot search term counters backed by CachePort (memory/diskcache/redis)."""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from panhub.domain.entities.hot_search import HotSearchItem, HotSearchStats
from panhub.domain.ports.cache import CachePort

log = structlog.get_logger(__name__)

_ENTRIES_KEY: str = "hot_searches:entries"

MAX_ENTRIES: int = 30
STATS_TOP_N: int = 10

FORBIDDEN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"政治|暴力|色情|赌博|毒品", re.IGNORECASE),
    re.compile(r"fuck|shit|bitch", re.IGNORECASE),
)


def is_forbidden(term: str) -> bool:
    return any(pattern.search(term) for pattern in FORBIDDEN_PATTERNS)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _rank_key(item: HotSearchItem) -> tuple[int, datetime]:
    return (item.score, item.last_searched)


def _serialize(items: list[HotSearchItem]) -> str:
    return json.dumps(
        [
            {
                "term": i.term,
                "score": i.score,
                "last_searched": i.last_searched.isoformat(),
                "created_at": i.created_at.isoformat(),
            }
            for i in items
        ]
    )


def _deserialize(data: str) -> list[HotSearchItem]:
    return [
        HotSearchItem(
            term=d["term"],
            score=int(d["score"]),
            last_searched=datetime.fromisoformat(d["last_searched"]),
            created_at=datetime.fromisoformat(d["created_at"]),
        )
        for d in json.loads(data)
    ]


class CacheHotSearchStore:
    """Keeps the top ``max_entries`` search terms by score.

    Ordering is score desc, then most recently searched first. Storage
    failures are logged and never propagate to callers.
    """

    def __init__(
        self,
        cache: CachePort,
        *,
        max_entries: int = MAX_ENTRIES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache
        self.max_entries = max_entries
        self._clock = clock
        self._lock = asyncio.Lock()

    async def record_search(self, term: str) -> None:
        term = (term or "").strip()
        if not term:
            return
        if is_forbidden(term):
            log.info("hot_search_forbidden_term")
            return

        now = self._clock()
        async with self._lock:
            try:
                items = {i.term: i for i in await self._load()}
                current = items.get(term)
                if current is None:
                    items[term] = HotSearchItem(
                        term=term, score=1, last_searched=now, created_at=now
                    )
                else:
                    items[term] = HotSearchItem(
                        term=term,
                        score=current.score + 1,
                        last_searched=now,
                        created_at=current.created_at,
                    )
                ranked = sorted(items.values(), key=_rank_key, reverse=True)
                trimmed = len(ranked) - self.max_entries
                await self._save(ranked[: self.max_entries])
            except Exception:
                log.warning("hot_search_record_error", term=term, exc_info=True)
                return

        if trimmed > 0:
            log.debug("hot_search_trimmed", removed=trimmed)
        log.debug("hot_search_recorded", term=term)

    async def get_hot_searches(self, limit: int | None = None) -> list[HotSearchItem]:
        limit = self.max_entries if limit is None else max(0, min(limit, self.max_entries))
        try:
            items = await self._load()
        except Exception:
            log.warning("hot_search_load_error", exc_info=True)
            return []
        return sorted(items, key=_rank_key, reverse=True)[:limit]

    async def delete(self, term: str) -> bool:
        async with self._lock:
            try:
                items = await self._load()
                kept = [i for i in items if i.term != term]
                if len(kept) == len(items):
                    return False
                await self._save(kept)
            except Exception:
                log.warning("hot_search_delete_error", term=term, exc_info=True)
                return False
        log.info("hot_search_deleted", term=term)
        return True

    async def clear(self) -> None:
        async with self._lock:
            try:
                await self.cache.delete(_ENTRIES_KEY)
            except Exception:
                log.warning("hot_search_clear_error", exc_info=True)
                return
        log.info("hot_searches_cleared")

    async def stats(self) -> HotSearchStats:
        try:
            items = await self._load()
        except Exception:
            log.warning("hot_search_stats_error", exc_info=True)
            return HotSearchStats()
        ranked = sorted(items, key=_rank_key, reverse=True)
        return HotSearchStats(total=len(ranked), top_terms=ranked[:STATS_TOP_N])

    # -- internal helpers --------------------------------------------------

    async def _load(self) -> list[HotSearchItem]:
        data = await self.cache.get(_ENTRIES_KEY)
        if data is None:
            return []
        try:
            return _deserialize(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error("hot_search_deserialize_error", error=str(e))
            return []

    async def _save(self, items: list[HotSearchItem]) -> None:
        await self.cache.set(_ENTRIES_KEY, _serialize(items), ttl=0)
