"""Confidence-branching entity resolution against a knowledge store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from time import perf_counter
from typing import Any

from tasklob.config import Settings
from tasklob.entity_resolution.similarity import fuzzy_score, normalize_entity_text
from tasklob.entity_resolution.store import EntityStore
from tasklob.entity_resolution.types import (
    AmbiguousEntity,
    EntityMatch,
    EntityResolutionBatch,
    NewEntity,
    ResolutionOutcome,
    ResolvedEntity,
)
from tasklob.parsing.types import EntityType, ExtractedEntity

logger = logging.getLogger(__name__)

RESOLVER_VERSION = "fuzzy-v1"
_CLUE_METADATA_KEYS = ("title", "team", "department", "description", "handles", "type")
_MIN_CLUE_TERM_LENGTH = 3


@dataclass(frozen=True, slots=True)
class ResolutionPolicy:
    """Tunable thresholds for the auto / alternates / ambiguous branch."""

    auto_resolve_threshold: float = 0.9
    runner_up_ceiling: float = 0.7
    context_clue_boost: float = 0.15
    min_match_score: float = 0.5
    min_account_match_score: float = 0.4
    default_store_confidence: float = 0.5
    new_entity_confidence: float = 0.8
    max_alternates: int = 2
    max_possible_matches: int = 4
    max_named_in_question: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResolutionPolicy":
        return cls(
            auto_resolve_threshold=settings.auto_resolve_threshold,
            runner_up_ceiling=settings.runner_up_ceiling,
            context_clue_boost=settings.context_clue_boost,
            min_match_score=settings.min_match_score,
            min_account_match_score=settings.min_account_match_score,
            new_entity_confidence=settings.new_entity_confidence,
        )


DEFAULT_POLICY = ResolutionPolicy()


def score_candidates(
    entity: ExtractedEntity,
    candidates: Iterable[EntityMatch],
    policy: ResolutionPolicy = DEFAULT_POLICY,
) -> list[EntityMatch]:
    """Return candidates re-scored for ``entity``, best first.

    The score is ``fuzzy × stored confidence`` so low-trust records do not
    outrank better string matches, plus a one-time boost when a context clue
    mentions the candidate's role or metadata.
    """

    min_score = policy.min_account_match_score if entity.type == "account" else policy.min_match_score
    scored: list[EntityMatch] = []
    for candidate in candidates:
        fuzzy = max(fuzzy_score(entity.mention, name) for name in _candidate_names(candidate))
        if fuzzy < min_score:
            continue
        stored = candidate.confidence if candidate.confidence > 0 else policy.default_store_confidence
        combined = fuzzy * min(1.0, stored)
        if _clues_overlap(entity.context_clues, candidate):
            combined = min(1.0, combined + policy.context_clue_boost)
        scored.append(replace(candidate, confidence=round(combined, 6)))
    scored.sort(key=lambda match: (-match.confidence, match.name.lower(), match.id))
    return scored


def resolve_entity(
    entity: ExtractedEntity,
    candidates: Iterable[EntityMatch],
    policy: ResolutionPolicy = DEFAULT_POLICY,
) -> ResolutionOutcome:
    """Apply the three-way branch to one entity and its raw store candidates."""

    if entity.type == "date":
        return ResolvedEntity(
            entity=entity,
            resolved_to=entity.mention,
            resolved_name=entity.mention,
            confidence=1.0,
        )

    scored = score_candidates(entity, candidates, policy)
    if not scored:
        return AmbiguousEntity(
            entity=entity,
            possible_matches=(),
            clarification_question=unknown_entity_question(entity),
        )

    top = scored[0]
    if top.confidence >= policy.auto_resolve_threshold:
        if len(scored) == 1:
            return ResolvedEntity(
                entity=entity,
                resolved_to=top.id,
                resolved_name=top.name,
                confidence=top.confidence,
            )
        if scored[1].confidence < policy.runner_up_ceiling:
            return ResolvedEntity(
                entity=entity,
                resolved_to=top.id,
                resolved_name=top.name,
                confidence=top.confidence,
                alternates=tuple(scored[1 : 1 + policy.max_alternates]),
            )

    possible = tuple(scored[: policy.max_possible_matches])
    return AmbiguousEntity(
        entity=entity,
        possible_matches=possible,
        clarification_question=build_clarification_question(entity, possible, policy),
    )


def select_match(
    ambiguous: AmbiguousEntity,
    chosen: EntityMatch,
    *,
    max_alternates: int = DEFAULT_POLICY.max_alternates,
) -> ResolvedEntity:
    """Turn a human's pick for an ambiguous entity into a resolved entity."""

    alternates = tuple(match for match in ambiguous.possible_matches if match.id != chosen.id)
    return ResolvedEntity(
        entity=ambiguous.entity,
        resolved_to=chosen.id,
        resolved_name=chosen.name,
        confidence=1.0,
        alternates=alternates[:max_alternates],
    )


def unknown_entity_question(entity: ExtractedEntity) -> str:
    return f'Who/what is "{entity.mention}"?'


def build_clarification_question(
    entity: ExtractedEntity,
    matches: Sequence[EntityMatch],
    policy: ResolutionPolicy = DEFAULT_POLICY,
) -> str:
    if not matches:
        return unknown_entity_question(entity)
    names = ", ".join(match.name for match in matches[: policy.max_named_in_question])
    return f"Which {entity.type} did you mean: {names}?"


class EntityResolver:
    """Resolves extracted entities concurrently against an ``EntityStore``."""

    def __init__(
        self,
        store: EntityStore,
        *,
        policy: ResolutionPolicy = DEFAULT_POLICY,
        max_concurrent_lookups: int = 8,
    ) -> None:
        self._store = store
        self._policy = policy
        self._max_concurrent_lookups = max(1, max_concurrent_lookups)

    @property
    def policy(self) -> ResolutionPolicy:
        return self._policy

    async def resolve_all(self, entities: Sequence[ExtractedEntity]) -> EntityResolutionBatch:
        """Resolve every entity; each lands in exactly one of resolved/ambiguous.

        Store lookups fan out concurrently and fan back in input order. A
        failed lookup degrades that entity to ambiguous with a note instead of
        failing the batch.
        """

        started = perf_counter()
        semaphore = asyncio.Semaphore(self._max_concurrent_lookups)
        outcomes = list(await asyncio.gather(*(self._resolve_one(entity, semaphore) for entity in entities)))
        batch = EntityResolutionBatch(
            resolved=[outcome for outcome in outcomes if isinstance(outcome, ResolvedEntity)],
            ambiguous=[outcome for outcome in outcomes if isinstance(outcome, AmbiguousEntity)],
            outcomes=outcomes,
        )
        logger.info(
            "resolution.timing entities=%d resolved=%d ambiguous=%d degraded=%d total_ms=%.2f",
            len(entities),
            len(batch.resolved),
            len(batch.ambiguous),
            len(batch.degraded_mentions),
            (perf_counter() - started) * 1000.0,
        )
        return batch

    def add_entity(
        self,
        name: str,
        entity_type: EntityType,
        *,
        role: str | None = None,
        email: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> EntityMatch:
        """Register a user-confirmed entity, seeded above machine-guessed confidence."""

        clean_name = " ".join(name.split())
        if not clean_name:
            raise ValueError("Entity name cannot be blank.")
        created = self._store.add_entity(
            NewEntity(
                name=clean_name,
                type=entity_type,
                role=role,
                email=email,
                metadata=dict(metadata or {}),
                confidence=self._policy.new_entity_confidence,
            )
        )
        logger.info("resolution.entity_added type=%s id=%s", entity_type, created.id)
        return created

    async def _resolve_one(self, entity: ExtractedEntity, semaphore: asyncio.Semaphore) -> ResolutionOutcome:
        if entity.type == "date":
            return resolve_entity(entity, (), self._policy)
        try:
            async with semaphore:
                candidates = await asyncio.to_thread(self._store.find_candidates, entity.type, entity.mention)
        except Exception as exc:
            logger.warning(
                "resolution.degraded mention=%r type=%s error=%s",
                entity.mention,
                entity.type,
                exc,
            )
            return AmbiguousEntity(
                entity=entity,
                possible_matches=(),
                clarification_question=unknown_entity_question(entity),
                note=f"Knowledge store lookup failed: {exc}",
            )
        return resolve_entity(entity, candidates, self._policy)


def _candidate_names(candidate: EntityMatch) -> list[str]:
    names = [candidate.name]
    aliases = candidate.metadata.get("aliases")
    if isinstance(aliases, list):
        names.extend(alias for alias in aliases if isinstance(alias, str) and alias.strip())
    return names


def _clue_terms(candidate: EntityMatch) -> list[str]:
    raw_terms: list[Any] = [candidate.role]
    for key in _CLUE_METADATA_KEYS:
        value = candidate.metadata.get(key)
        if isinstance(value, list):
            raw_terms.extend(value)
        else:
            raw_terms.append(value)
    terms: list[str] = []
    for term in raw_terms:
        if not isinstance(term, str):
            continue
        normalized = normalize_entity_text(term)
        if len(normalized) >= _MIN_CLUE_TERM_LENGTH:
            terms.append(normalized)
    return terms


def _clues_overlap(clues: Iterable[str], candidate: EntityMatch) -> bool:
    terms = _clue_terms(candidate)
    if not terms:
        return False
    for clue in clues:
        normalized_clue = normalize_entity_text(clue)
        if len(normalized_clue) < _MIN_CLUE_TERM_LENGTH:
            continue
        if any(term in normalized_clue for term in terms):
            return True
    return False
