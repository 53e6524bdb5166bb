from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class HotSearchItem:
    term: str
    score: int
    last_searched: datetime
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "term": self.term,
            "score": self.score,
            "last_searched": self.last_searched.isoformat(),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class HotSearchStats:
    total: int = 0
    top_terms: list[HotSearchItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "top_terms": [item.to_dict() for item in self.top_terms],
        }
