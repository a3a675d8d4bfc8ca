"""Lob parsing and enrichment schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from tasklob.parsing.types import Classification, EntityType, Urgency
from tasklob.schemas.common import CamelModel


class LobParseRequest(CamelModel):
    text: str
    company_context: dict[str, Any] | None = None


class LobEnrichRequest(LobParseRequest):
    sender_id: str = Field(min_length=1, max_length=255)
    workspace_id: str = Field(min_length=1, max_length=255)
    submitted_at: datetime | None = None
    timeout_seconds: float | None = Field(default=None, gt=0, le=600)


class ExtractedEntityRead(CamelModel):
    mention: str
    type: EntityType
    role: str = "mentioned"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    context_clues: list[str] = Field(default_factory=list)


class ParsedTaskRead(CamelModel):
    position: int
    raw_chunk: str
    summary: str
    classification: Classification
    system: str | None
    urgency: Urgency
    deadline: str | None
    assignee: str | None
    related_entities: list[str]
    missing_info: list[str]
    self_service_steps: list[str] | None
    venting_response: str | None


class ParseResultRead(CamelModel):
    tasks: list[ParsedTaskRead]
    entities: list[ExtractedEntityRead]
    dropped_tasks: int
    dropped_entities: int


class EntityMatchRead(CamelModel):
    id: str
    name: str
    confidence: float
    role: str | None = None
    email: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ResolvedEntityRead(CamelModel):
    entity: ExtractedEntityRead
    resolved: Literal[True] = True
    resolved_to: str
    resolved_name: str
    confidence: float
    alternates: list[EntityMatchRead]


class AmbiguousEntityRead(CamelModel):
    entity: ExtractedEntityRead
    resolved: Literal[False] = False
    possible_matches: list[EntityMatchRead]
    clarification_question: str
    note: str | None = None


class EntityBundleRead(CamelModel):
    extracted: list[ExtractedEntityRead]
    resolved: list[ResolvedEntityRead]
    ambiguous: list[AmbiguousEntityRead]


class ResolutionRecordRead(CamelModel):
    id: str
    problem_pattern: str
    solution: str
    system_name: str | None
    success_count: int


class RankedResolutionRead(CamelModel):
    record: ResolutionRecordRead
    relevance: float
    score: float
    matched_keyword: str


class RoutingSuggestionRead(CamelModel):
    system: str
    pattern_id: str
    assignee_id: str | None
    assignee_name: str | None
    confidence: float
    reason: str
    times_used: int
    needs_user_input: bool


class MemoryContextRead(CamelModel):
    resolutions: list[RankedResolutionRead]
    routing: list[RoutingSuggestionRead]
    systems: list[str]
    keywords: list[str]
    degraded_queries: list[str]


class EnrichmentDiagnosticsRead(CamelModel):
    dropped_tasks: int
    dropped_entities: int
    degraded_entities: list[str]
    degraded_queries: list[str]
    archived: bool | None
    archive_id: str | None


class RawLobRead(CamelModel):
    text: str
    sender_id: str
    workspace_id: str
    submitted_at: datetime


class EnrichedLobRead(CamelModel):
    lob: RawLobRead
    tasks: list[ParsedTaskRead]
    entities: EntityBundleRead
    context: MemoryContextRead
    diagnostics: EnrichmentDiagnosticsRead


class LobSessionRead(CamelModel):
    id: int
    workspace_id: str
    sender_id: str
    raw_input: str
    submitted_at: datetime
    parsed_data_json: dict[str, Any]
    created_at: datetime
