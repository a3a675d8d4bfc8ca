"""Resolution and routing memory."""

from tasklob.memory.aggregator import MemoryAggregator, MemoryPolicy
from tasklob.memory.history import HistoryStore, MutableHistoryStore
from tasklob.memory.types import (
    MemoryContext,
    RankedResolution,
    ResolutionRecord,
    RoutingPattern,
    RoutingSuggestion,
)

__all__ = [
    "HistoryStore",
    "MemoryAggregator",
    "MemoryContext",
    "MemoryPolicy",
    "MutableHistoryStore",
    "RankedResolution",
    "ResolutionRecord",
    "RoutingPattern",
    "RoutingSuggestion",
]
