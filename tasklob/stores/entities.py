"""Company-brain backed entity store."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from tasklob.entity_resolution.types import EntityMatch, NewEntity
from tasklob.models.company_memory import CompanyMemory
from tasklob.parsing.types import EntityType

logger = logging.getLogger(__name__)

# Accounts live alongside systems, tagged in their value.
_MEMORY_TYPE_BY_ENTITY: dict[str, str] = {
    "person": "person",
    "company": "company",
    "system": "system",
    "account": "system",
}


def is_account_memory(memory: CompanyMemory) -> bool:
    value = memory.value_json or {}
    return value.get("type") == "account" or "account" in memory.key.lower()


def memory_to_match(memory: CompanyMemory) -> EntityMatch:
    value = dict(memory.value_json or {})
    name = value.get("name")
    return EntityMatch(
        id=str(memory.id),
        name=name if isinstance(name, str) and name.strip() else memory.key,
        confidence=memory.confidence,
        role=value.get("role") if isinstance(value.get("role"), str) else None,
        email=value.get("email") if isinstance(value.get("email"), str) else None,
        metadata=value,
    )


class SqlEntityStore:
    """``EntityStore`` over the ``company_memory`` table for one workspace."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        workspace_id: str,
        *,
        max_candidates: int = 500,
    ) -> None:
        self._session_factory = session_factory
        self._workspace_id = workspace_id
        self._max_candidates = max(1, max_candidates)

    @property
    def workspace_id(self) -> str:
        return self._workspace_id

    def find_candidates(self, entity_type: EntityType, mention: str) -> list[EntityMatch]:
        memory_type = _MEMORY_TYPE_BY_ENTITY.get(entity_type)
        if memory_type is None:
            return []
        stmt = (
            select(CompanyMemory)
            .where(
                CompanyMemory.workspace_id == self._workspace_id,
                CompanyMemory.memory_type == memory_type,
            )
            .order_by(CompanyMemory.confidence.desc(), CompanyMemory.id.asc())
            .limit(self._max_candidates)
        )
        with self._session_factory() as db:
            rows = list(db.scalars(stmt).all())
        if entity_type == "account":
            rows = [row for row in rows if is_account_memory(row)]
        logger.debug(
            "store.find_candidates workspace_id=%s type=%s mention=%r candidates=%d",
            self._workspace_id,
            entity_type,
            mention,
            len(rows),
        )
        return [memory_to_match(row) for row in rows]

    def add_entity(self, entity: NewEntity) -> EntityMatch:
        memory_type = _MEMORY_TYPE_BY_ENTITY.get(entity.type)
        if memory_type is None:
            raise ValueError(f"Entities of type {entity.type!r} are not stored.")
        value: dict[str, Any] = dict(entity.metadata)
        value["name"] = entity.name
        if entity.role:
            value["role"] = entity.role
        if entity.email:
            value["email"] = entity.email
        if entity.type == "account":
            value["type"] = "account"

        with self._session_factory() as db:
            memory = CompanyMemory(
                workspace_id=self._workspace_id,
                memory_type=memory_type,
                key=" ".join(entity.name.lower().split()),
                value_json=value,
                confidence=entity.confidence,
                times_used=0,
                times_confirmed=0,
            )
            db.add(memory)
            db.commit()
            db.refresh(memory)
            return memory_to_match(memory)
