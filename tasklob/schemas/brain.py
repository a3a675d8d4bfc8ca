"""Company brain request/response schemas."""

from typing import Any, Literal

from pydantic import Field, field_validator

from tasklob.schemas.common import CamelModel
from tasklob.schemas.lob import AmbiguousEntityRead, EntityMatchRead

StoredEntityType = Literal["person", "company", "system", "account"]


def _clean_required(value: str) -> str:
    cleaned = " ".join(value.split())
    if not cleaned:
        raise ValueError("value cannot be blank")
    return cleaned


class EntityCreateRequest(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    type: StoredEntityType
    role: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _clean_required(value)


class EntitySelectRequest(CamelModel):
    ambiguous: AmbiguousEntityRead
    chosen_id: str = Field(min_length=1)


class ResolutionCreateRequest(CamelModel):
    problem_pattern: str = Field(min_length=1)
    solution: str = Field(min_length=1)
    system_name: str | None = Field(default=None, max_length=255)
    resolved_by: str | None = Field(default=None, max_length=255)
    task_id: str | None = Field(default=None, max_length=255)

    @field_validator("problem_pattern", "solution")
    @classmethod
    def validate_text(cls, value: str) -> str:
        return _clean_required(value)


class ResolutionSuccessRequest(CamelModel):
    confirmation_key: str = Field(min_length=1, max_length=255)


class RoutingLearnRequest(CamelModel):
    key: str = Field(min_length=1, max_length=255)
    assignee_id: str = Field(min_length=1, max_length=255)
    assignee_name: str | None = Field(default=None, max_length=255)
    reason: str | None = None

    @field_validator("key")
    @classmethod
    def validate_key(cls, value: str) -> str:
        return _clean_required(value)


class RoutingPatternRead(CamelModel):
    id: str
    key: str
    assignee_id: str | None
    assignee_name: str | None
    confidence: float
    times_used: int
    times_confirmed: int
    reason: str | None


class RoutingLearnRead(CamelModel):
    pattern: RoutingPatternRead
    action: Literal["created", "confirmed", "reassigned"]


class SeedPerson(CamelModel):
    user_id: str | None = None
    name: str = Field(min_length=1, max_length=255)
    role: str | None = None
    email: str | None = None
    handles: list[str] = Field(default_factory=list)


class SeedSystem(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    type: str | None = None


class SeedNamed(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None


class BrainSeedRequest(CamelModel):
    company_name: str | None = None
    website_url: str | None = None
    people: list[SeedPerson] = Field(default_factory=list)
    systems: list[SeedSystem] = Field(default_factory=list)
    companies: list[SeedNamed] = Field(default_factory=list)
    accounts: list[SeedNamed] = Field(default_factory=list)


class BrainSeedRead(CamelModel):
    people: list[EntityMatchRead]
    systems: list[EntityMatchRead]
    companies: list[EntityMatchRead]
    accounts: list[EntityMatchRead]
    routing: list[RoutingPatternRead]
