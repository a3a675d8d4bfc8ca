"""Validation and repair boundary for untrusted model output."""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from tasklob.errors import MalformedOutputError
from tasklob.parsing.types import (
    CLASSIFICATIONS,
    ENTITY_TYPES,
    URGENCIES,
    ExtractedEntity,
    ParsedTask,
    ParseResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TASKS = 20
DEFAULT_VENTING_RESPONSE = (
    "That sounds frustrating. If there's something specific you'd like fixed, "
    "tell me and I'll route it."
)
DEFAULT_VENTING_QUESTION = "Is there something specific you'd like fixed?"
DEFAULT_SELF_SERVICE_QUESTION = "What has already been tried?"

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")

_CLASSIFICATION_ALIASES = {
    "selfservice": "self_service",
    "self": "self_service",
    "vent": "venting",
    "rant": "venting",
    "calendar": "reminder",
    "request": "task",
    "bug": "task",
}
_ENTITY_TYPE_ALIASES = {
    "people": "person",
    "user": "person",
    "organization": "company",
    "organisation": "company",
    "org": "company",
    "vendor": "company",
    "client": "company",
    "platform": "system",
    "tool": "system",
    "website": "system",
    "app": "system",
    "deadline": "date",
    "time": "date",
    "datetime": "date",
}


class _RawModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _as_text_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    cleaned: list[str] = []
    seen: set[str] = set()
    for item in value:
        if not isinstance(item, (str, int, float)) or isinstance(item, bool):
            continue
        text = _clean_text(str(item))
        if not text or text.lower() in seen:
            continue
        seen.add(text.lower())
        cleaned.append(text)
    return cleaned


def _optional_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = _clean_text(str(value))
    if not text or text.lower() in {"null", "none", "n/a"}:
        return None
    return text


class _RawTask(_RawModel):
    position: int | None = None
    raw_chunk: str | None = None
    summary: str
    classification: str
    system: str | None = None
    urgency: str | None = None
    deadline: str | None = None
    assignee: str | None = None
    related_entities: list[str] = []
    missing_info: list[str] = []
    self_service_steps: list[str] | None = None
    venting_response: str | None = None

    @field_validator("position", mode="before")
    @classmethod
    def _coerce_position(cls, value: Any) -> int | None:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return None
        return parsed if parsed >= 1 else None

    @field_validator("summary", mode="before")
    @classmethod
    def _require_summary(cls, value: Any) -> str:
        text = _optional_text(value)
        if text is None:
            raise ValueError("summary is required")
        return text

    @field_validator("classification", mode="before")
    @classmethod
    def _normalize_classification(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("classification must be a string")
        key = re.sub(r"[\s\-]+", "_", value.strip().lower())
        key = _CLASSIFICATION_ALIASES.get(key.replace("_", ""), key)
        if key not in CLASSIFICATIONS:
            raise ValueError(f"unknown classification: {value!r}")
        return key

    @field_validator("urgency", mode="before")
    @classmethod
    def _normalize_urgency(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in URGENCIES:
            return value.strip().lower()
        return "normal"

    @field_validator("raw_chunk", "system", "deadline", "assignee", "venting_response", mode="before")
    @classmethod
    def _clean_optional(cls, value: Any) -> str | None:
        return _optional_text(value)

    @field_validator("related_entities", "missing_info", mode="before")
    @classmethod
    def _clean_list(cls, value: Any) -> list[str]:
        return _as_text_list(value)

    @field_validator("self_service_steps", mode="before")
    @classmethod
    def _clean_steps(cls, value: Any) -> list[str] | None:
        steps = _as_text_list(value)
        return steps or None


class _RawEntity(_RawModel):
    mention: str
    type: str
    role: str = "mentioned"
    confidence: float = 0.5
    context_clues: list[str] = []

    @field_validator("mention", mode="before")
    @classmethod
    def _require_mention(cls, value: Any) -> str:
        text = _optional_text(value)
        if text is None:
            raise ValueError("mention is required")
        return text

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("type must be a string")
        key = value.strip().lower()
        key = _ENTITY_TYPE_ALIASES.get(key, key)
        if key not in ENTITY_TYPES:
            raise ValueError(f"unknown entity type: {value!r}")
        return key

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> str:
        text = _optional_text(value)
        if text is None:
            return "mentioned"
        return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_") or "mentioned"

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return 0.5
        if math.isnan(parsed):
            return 0.5
        return max(0.0, min(1.0, parsed))

    @field_validator("context_clues", mode="before")
    @classmethod
    def _clean_clues(cls, value: Any) -> list[str]:
        return _as_text_list(value)


def decode_model_output(raw: Any) -> Any:
    """Decode raw completion output into JSON, retrying once on a fenced code block."""

    if isinstance(raw, (dict, list)):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedOutputError("Model returned empty output")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        first_error = exc
    match = _FENCED_JSON_RE.search(raw)
    if match is None:
        raise MalformedOutputError(f"Model output is not JSON: {first_error}") from first_error
    try:
        return json.loads(match.group(1).strip())
    except json.JSONDecodeError as exc:
        raise MalformedOutputError(f"Fenced model output is not JSON: {exc}") from exc


def validate_parse_output(raw: Any, *, max_tasks: int = DEFAULT_MAX_TASKS) -> ParseResult:
    """Validate untrusted model output into tasks and entities.

    Decoding failures are fatal (``MalformedOutputError``). Individual tasks or
    entities that fail required-field checks are dropped, counted and logged;
    optional fields are defaulted rather than rejected.
    """

    decoded = decode_model_output(raw)
    if isinstance(decoded, list):
        decoded = {"tasks": decoded}
    if not isinstance(decoded, dict):
        raise MalformedOutputError(f"Model output must be a JSON object, got {type(decoded).__name__}")
    if "tasks" not in decoded and "entities" not in decoded:
        raise MalformedOutputError("Model output has neither 'tasks' nor 'entities'")

    raw_tasks = decoded.get("tasks") or []
    if not isinstance(raw_tasks, list):
        raise MalformedOutputError("Model output 'tasks' must be a list")
    raw_entities = decoded.get("entities") or []
    if not isinstance(raw_entities, list):
        logger.warning("parse.entities_not_list type=%s", type(raw_entities).__name__)
        raw_entities = []

    tasks, dropped_tasks = _validate_tasks(raw_tasks, max_tasks=max_tasks)
    entities, dropped_entities = _validate_entities(raw_entities)
    if dropped_tasks or dropped_entities:
        logger.warning(
            "parse.partial_drop tasks_kept=%d tasks_dropped=%d entities_kept=%d entities_dropped=%d",
            len(tasks),
            dropped_tasks,
            len(entities),
            dropped_entities,
        )
    return ParseResult(
        tasks=tasks,
        entities=entities,
        dropped_tasks=dropped_tasks,
        dropped_entities=dropped_entities,
    )


def _validate_tasks(raw_tasks: list[Any], *, max_tasks: int) -> tuple[list[ParsedTask], int]:
    dropped = 0
    ordered: list[tuple[float, int, _RawTask]] = []
    for index, item in enumerate(raw_tasks):
        if not isinstance(item, dict):
            logger.warning("parse.task_dropped index=%d reason=not_an_object", index)
            dropped += 1
            continue
        try:
            task = _RawTask.model_validate(item)
        except ValidationError as exc:
            logger.warning(
                "parse.task_dropped index=%d reason=%s",
                index,
                "; ".join(error["msg"] for error in exc.errors()),
            )
            dropped += 1
            continue
        sort_position = float(task.position) if task.position is not None else math.inf
        ordered.append((sort_position, index, task))

    ordered.sort(key=lambda entry: (entry[0], entry[1]))
    if len(ordered) > max_tasks:
        logger.warning("parse.task_limit_exceeded limit=%d received=%d", max_tasks, len(ordered))
        dropped += len(ordered) - max_tasks
        ordered = ordered[:max_tasks]

    return [_build_task(position, raw) for position, (_, _, raw) in enumerate(ordered, start=1)], dropped


def _build_task(position: int, raw: _RawTask) -> ParsedTask:
    classification = raw.classification
    steps = raw.self_service_steps
    venting_response = raw.venting_response
    missing_info = list(raw.missing_info)

    if classification == "self_service":
        venting_response = None
        if not steps:
            logger.warning("parse.self_service_without_steps position=%d reclassified=task", position)
            classification = "task"
            steps = None
            if not missing_info:
                missing_info.append(DEFAULT_SELF_SERVICE_QUESTION)
    elif classification == "venting":
        steps = None
        if venting_response is None:
            venting_response = DEFAULT_VENTING_RESPONSE
        if not missing_info:
            missing_info.append(DEFAULT_VENTING_QUESTION)
    else:
        steps = None
        venting_response = None

    return ParsedTask(
        position=position,
        raw_chunk=raw.raw_chunk or raw.summary,
        summary=raw.summary,
        classification=classification,
        system=raw.system,
        urgency=raw.urgency or "normal",
        deadline=raw.deadline,
        assignee=raw.assignee,
        related_entities=tuple(raw.related_entities),
        missing_info=tuple(missing_info),
        self_service_steps=tuple(steps) if steps else None,
        venting_response=venting_response,
    )


def _validate_entities(raw_entities: list[Any]) -> tuple[list[ExtractedEntity], int]:
    dropped = 0
    merged: dict[tuple[str, str], _RawEntity] = {}
    for index, item in enumerate(raw_entities):
        if not isinstance(item, dict):
            logger.warning("parse.entity_dropped index=%d reason=not_an_object", index)
            dropped += 1
            continue
        try:
            entity = _RawEntity.model_validate(item)
        except ValidationError as exc:
            logger.warning(
                "parse.entity_dropped index=%d reason=%s",
                index,
                "; ".join(error["msg"] for error in exc.errors()),
            )
            dropped += 1
            continue
        key = (entity.mention.lower(), entity.type)
        existing = merged.get(key)
        if existing is None:
            merged[key] = entity
            continue
        # Same mention and type seen twice: keep one entity with the union of clues.
        existing.confidence = max(existing.confidence, entity.confidence)
        for clue in entity.context_clues:
            if clue.lower() not in {c.lower() for c in existing.context_clues}:
                existing.context_clues.append(clue)
        if existing.role == "mentioned" and entity.role != "mentioned":
            existing.role = entity.role

    entities = [
        ExtractedEntity(
            mention=entity.mention,
            type=entity.type,
            role=entity.role,
            confidence=entity.confidence,
            context_clues=tuple(entity.context_clues),
        )
        for entity in merged.values()
    ]
    return entities, dropped


def _clean_text(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()
