"""Resolution outcomes. Each wraps an ``ExtractedEntity`` without modifying it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from tasklob.parsing.types import EntityType, ExtractedEntity


@dataclass(frozen=True, slots=True)
class EntityMatch:
    """A knowledge-store candidate for an extracted mention."""

    id: str
    name: str
    confidence: float
    role: str | None = None
    email: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NewEntity:
    """A brand-new entity to register in the knowledge store."""

    name: str
    type: EntityType
    role: str | None = None
    email: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.8


@dataclass(frozen=True, slots=True)
class ResolvedEntity:
    """An entity linked to one store record; alternates are kept for audit/undo."""

    entity: ExtractedEntity
    resolved_to: str
    resolved_name: str
    confidence: float
    alternates: tuple[EntityMatch, ...] = ()
    kind: Literal["resolved"] = "resolved"

    @property
    def resolved(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class AmbiguousEntity:
    """An entity that needs a human to pick (or create) the right record."""

    entity: ExtractedEntity
    possible_matches: tuple[EntityMatch, ...]
    clarification_question: str
    note: str | None = None
    kind: Literal["ambiguous"] = "ambiguous"

    @property
    def resolved(self) -> bool:
        return False


ResolutionOutcome = ResolvedEntity | AmbiguousEntity


@dataclass(frozen=True, slots=True)
class EntityResolutionBatch:
    """Outcomes of ``resolve_all``; both lists keep the input entity order."""

    resolved: list[ResolvedEntity] = field(default_factory=list)
    ambiguous: list[AmbiguousEntity] = field(default_factory=list)
    outcomes: list[ResolutionOutcome] = field(default_factory=list)

    @property
    def degraded_mentions(self) -> list[str]:
        return [item.entity.mention for item in self.ambiguous if item.note is not None]
