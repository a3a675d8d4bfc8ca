"""Typed memory records and aggregation outputs."""

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class ResolutionRecord:
    """A past problem -> fix pair."""

    id: str
    problem_pattern: str
    solution: str
    system_name: str | None = None
    success_count: int = 0


@dataclass(frozen=True, slots=True)
class RoutingPattern:
    """Learned mapping from a keyword/system to a preferred handler."""

    id: str
    key: str
    assignee_id: str | None
    confidence: float
    times_used: int = 0
    times_confirmed: int = 0
    assignee_name: str | None = None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class RankedResolution:
    record: ResolutionRecord
    relevance: float
    score: float
    matched_keyword: str


@dataclass(frozen=True, slots=True)
class RoutingSuggestion:
    system: str
    pattern_id: str
    assignee_id: str | None
    assignee_name: str | None
    confidence: float
    reason: str
    times_used: int
    needs_user_input: bool


@dataclass(frozen=True, slots=True)
class MemoryContext:
    """Prior context relevant to one parsed lob."""

    resolutions: list[RankedResolution] = field(default_factory=list)
    routing: list[RoutingSuggestion] = field(default_factory=list)
    systems: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    degraded_queries: list[str] = field(default_factory=list)
