from .hot_search import HotSearchItem, HotSearchStats
from .search import (
    EmptyKeywordError,
    MergedResults,
    NoSourcesEnabledError,
    ResultItem,
    SearchError,
    SearchPhase,
    SearchSettings,
    SearchSnapshot,
    SearchValidationError,
    SourceBatch,
    SourceFamily,
)

__all__ = [
    "EmptyKeywordError",
    "HotSearchItem",
    "HotSearchStats",
    "MergedResults",
    "NoSourcesEnabledError",
    "ResultItem",
    "SearchError",
    "SearchPhase",
    "SearchSettings",
    "SearchSnapshot",
    "SearchValidationError",
    "SourceBatch",
    "SourceFamily",
]
