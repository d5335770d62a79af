"""Matching engine components."""

from .keyword_query import KeywordQuery, evaluate
from .search import ReconciliationSearchService, effective_keywords
from .recorder import MatchRecorder
from .history import MatchHistoryAggregator

__all__ = [
    "KeywordQuery",
    "evaluate",
    "ReconciliationSearchService",
    "effective_keywords",
    "MatchRecorder",
    "MatchHistoryAggregator",
]
