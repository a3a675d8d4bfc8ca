"""Typed parse outputs independent of persistence and transport."""

from dataclasses import dataclass, field
from typing import Literal

EntityType = Literal["person", "company", "system", "account", "date"]
Classification = Literal["task", "self_service", "reminder", "venting"]
Urgency = Literal["normal", "urgent", "deadline"]

ENTITY_TYPES: tuple[str, ...] = ("person", "company", "system", "account", "date")
CLASSIFICATIONS: tuple[str, ...] = ("task", "self_service", "reminder", "venting")
URGENCIES: tuple[str, ...] = ("normal", "urgent", "deadline")


@dataclass(frozen=True, slots=True)
class ExtractedEntity:
    """A person/company/system/account/date mention found in a lob."""

    mention: str
    type: EntityType
    role: str = "mentioned"
    confidence: float = 0.5
    context_clues: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ParsedTask:
    """One discrete unit of work segmented out of a lob.

    Exactly one of ``self_service_steps``/``venting_response`` is set for the
    ``self_service``/``venting`` classifications; both are ``None`` otherwise.
    """

    position: int
    raw_chunk: str
    summary: str
    classification: Classification
    system: str | None = None
    urgency: Urgency = "normal"
    deadline: str | None = None
    assignee: str | None = None
    related_entities: tuple[str, ...] = ()
    missing_info: tuple[str, ...] = ()
    self_service_steps: tuple[str, ...] | None = None
    venting_response: str | None = None


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Validated parser output plus counts of what the validator had to drop."""

    tasks: list[ParsedTask] = field(default_factory=list)
    entities: list[ExtractedEntity] = field(default_factory=list)
    dropped_tasks: int = 0
    dropped_entities: int = 0
