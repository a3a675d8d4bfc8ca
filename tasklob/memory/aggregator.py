"""Keyword-relevance, success-weighted context aggregation over history memory."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from time import perf_counter

from tasklob.config import Settings
from tasklob.memory.history import HistoryStore
from tasklob.memory.types import (
    MemoryContext,
    RankedResolution,
    ResolutionRecord,
    RoutingPattern,
    RoutingSuggestion,
)
from tasklob.parsing.types import ExtractedEntity, ParsedTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MemoryPolicy:
    """Scoring weights and bounds for context aggregation."""

    problem_weight: int = 2
    solution_weight: int = 1
    system_bonus: int = 3
    success_weight: float = 0.1
    min_term_length: int = 4
    max_terms_per_query: int = 5
    resolutions_per_keyword: int = 3
    max_resolutions: int = 5
    routing_confirmation_threshold: float = 0.7

    @classmethod
    def from_settings(cls, settings: Settings) -> "MemoryPolicy":
        return cls(
            success_weight=settings.success_weight,
            max_terms_per_query=settings.max_terms_per_query,
            resolutions_per_keyword=settings.resolutions_per_keyword,
            max_resolutions=settings.max_context_resolutions,
        )


DEFAULT_MEMORY_POLICY = MemoryPolicy()


def derive_keywords(tasks: Sequence[ParsedTask], entities: Sequence[ExtractedEntity]) -> list[str]:
    """Lowercased entity mentions then task systems, deduplicated in first-seen order."""

    keywords: dict[str, None] = {}
    for entity in entities:
        keyword = " ".join(entity.mention.lower().split())
        if keyword:
            keywords.setdefault(keyword, None)
    for task in tasks:
        if task.system:
            keywords.setdefault(" ".join(task.system.lower().split()), None)
    return list(keywords)


def derive_systems(tasks: Sequence[ParsedTask], entities: Sequence[ExtractedEntity]) -> list[str]:
    """System-typed mentions then task systems, deduplicated case-insensitively."""

    systems: dict[str, str] = {}
    names = [entity.mention for entity in entities if entity.type == "system"]
    names.extend(task.system for task in tasks if task.system)
    for name in names:
        clean = " ".join(name.split())
        if clean:
            systems.setdefault(clean.lower(), clean)
    return list(systems.values())


def query_terms(keyword: str, policy: MemoryPolicy = DEFAULT_MEMORY_POLICY) -> list[str]:
    terms: dict[str, None] = {}
    for word in keyword.lower().split():
        if len(word) >= policy.min_term_length:
            terms.setdefault(word, None)
    return list(terms)[: policy.max_terms_per_query]


def score_resolution(
    record: ResolutionRecord,
    terms: Sequence[str],
    system_name: str | None = None,
    policy: MemoryPolicy = DEFAULT_MEMORY_POLICY,
) -> float | None:
    """Normalized containment relevance of ``record`` for ``terms``; ``None`` when unrelated."""

    if not terms:
        return None
    problem = (record.problem_pattern or "").lower()
    solution = (record.solution or "").lower()
    raw = 0
    for term in terms:
        if term in problem:
            raw += policy.problem_weight
        if term in solution:
            raw += policy.solution_weight
    if system_name and record.system_name and record.system_name.lower() == system_name.lower():
        raw += policy.system_bonus
    if raw <= 0:
        return None
    return raw / (len(terms) * policy.problem_weight)


def success_weighted_score(relevance: float, success_count: int, policy: MemoryPolicy = DEFAULT_MEMORY_POLICY) -> float:
    return relevance * (1 + max(0, success_count) * policy.success_weight)


class MemoryAggregator:
    """Collects past resolutions and routing suggestions relevant to a parsed lob."""

    def __init__(
        self,
        store: HistoryStore,
        *,
        policy: MemoryPolicy = DEFAULT_MEMORY_POLICY,
        max_concurrent_lookups: int = 8,
    ) -> None:
        self._store = store
        self._policy = policy
        self._max_concurrent_lookups = max(1, max_concurrent_lookups)

    async def get_full_context(
        self,
        tasks: Sequence[ParsedTask],
        entities: Sequence[ExtractedEntity],
    ) -> MemoryContext:
        """Return ranked resolutions, routing suggestions, systems and keywords.

        Results for identical inputs against an unchanged store come back in
        identical order. Failed lookups are skipped and listed in
        ``degraded_queries``.
        """

        started = perf_counter()
        keywords = derive_keywords(tasks, entities)
        systems = derive_systems(tasks, entities)
        semaphore = asyncio.Semaphore(self._max_concurrent_lookups)

        (resolutions, degraded_resolutions), (routing, degraded_routing) = await asyncio.gather(
            self._search_keywords(keywords, systems, semaphore),
            self._find_routing(systems, semaphore),
        )
        context = MemoryContext(
            resolutions=resolutions,
            routing=routing,
            systems=systems,
            keywords=keywords,
            degraded_queries=degraded_resolutions + degraded_routing,
        )
        logger.info(
            "memory.timing keywords=%d systems=%d resolutions=%d routing=%d degraded=%d total_ms=%.2f",
            len(keywords),
            len(systems),
            len(resolutions),
            len(routing),
            len(context.degraded_queries),
            (perf_counter() - started) * 1000.0,
        )
        return context

    async def _search_keywords(
        self,
        keywords: list[str],
        systems: list[str],
        semaphore: asyncio.Semaphore,
    ) -> tuple[list[RankedResolution], list[str]]:
        systems_by_key = {system.lower(): system for system in systems}
        per_keyword = await asyncio.gather(
            *(self._search_one(keyword, systems_by_key.get(keyword), semaphore) for keyword in keywords)
        )

        merged: dict[str, RankedResolution] = {}
        degraded: list[str] = []
        for keyword, ranked in zip(keywords, per_keyword):
            if ranked is None:
                degraded.append(f"resolutions:{keyword}")
                continue
            for item in ranked:
                merged.setdefault(item.record.id, item)

        # Stable sort: ties keep first-seen order.
        ordered = sorted(merged.values(), key=lambda item: -item.score)
        return ordered[: self._policy.max_resolutions], degraded

    async def _search_one(
        self,
        keyword: str,
        system_name: str | None,
        semaphore: asyncio.Semaphore,
    ) -> list[RankedResolution] | None:
        terms = query_terms(keyword, self._policy)
        if not terms:
            return []
        try:
            async with semaphore:
                records = await asyncio.to_thread(self._store.search_resolutions, keyword, system_name)
        except Exception as exc:
            logger.warning("memory.resolution_search_failed keyword=%r error=%s", keyword, exc)
            return None

        ranked: list[RankedResolution] = []
        for record in records:
            relevance = score_resolution(record, terms, system_name, self._policy)
            if relevance is None:
                continue
            ranked.append(
                RankedResolution(
                    record=record,
                    relevance=relevance,
                    score=success_weighted_score(relevance, record.success_count, self._policy),
                    matched_keyword=keyword,
                )
            )
        ranked.sort(key=lambda item: (-item.score, item.record.id))
        return ranked[: self._policy.resolutions_per_keyword]

    async def _find_routing(
        self,
        systems: list[str],
        semaphore: asyncio.Semaphore,
    ) -> tuple[list[RoutingSuggestion], list[str]]:
        lookups = await asyncio.gather(*(self._route_one(system, semaphore) for system in systems))
        suggestions: list[RoutingSuggestion] = []
        degraded: list[str] = []
        for system, (pattern, failed) in zip(systems, lookups):
            if failed:
                degraded.append(f"routing:{system}")
                continue
            if pattern is not None:
                suggestions.append(self._to_suggestion(system, pattern))
        return suggestions, degraded

    async def _route_one(self, system: str, semaphore: asyncio.Semaphore) -> tuple[RoutingPattern | None, bool]:
        try:
            async with semaphore:
                return await asyncio.to_thread(self._store.find_routing_pattern, system), False
        except Exception as exc:
            logger.warning("memory.routing_lookup_failed system=%r error=%s", system, exc)
            return None, True

    def _to_suggestion(self, system: str, pattern: RoutingPattern) -> RoutingSuggestion:
        return RoutingSuggestion(
            system=system,
            pattern_id=pattern.id,
            assignee_id=pattern.assignee_id,
            assignee_name=pattern.assignee_name,
            confidence=pattern.confidence,
            reason=pattern.reason or f"Usually handles {system} issues",
            times_used=pattern.times_used,
            needs_user_input=pattern.confidence < self._policy.routing_confirmation_threshold,
        )
