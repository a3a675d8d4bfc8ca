"""SQL-backed resolution and routing memory."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session, sessionmaker

from tasklob.memory.aggregator import DEFAULT_MEMORY_POLICY, MemoryPolicy, query_terms
from tasklob.memory.types import ResolutionRecord, RoutingPattern
from tasklob.models.company_memory import CompanyMemory
from tasklob.models.resolution_memory import ResolutionMemory

logger = logging.getLogger(__name__)

ROUTING_MEMORY_TYPE = "routing"


def _parse_id(raw_id: str) -> int | None:
    try:
        return int(raw_id)
    except (TypeError, ValueError):
        return None


def normalize_routing_key(key: str) -> str:
    return " ".join(key.lower().split())


def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def resolution_to_record(row: ResolutionMemory) -> ResolutionRecord:
    return ResolutionRecord(
        id=str(row.id),
        problem_pattern=row.problem_pattern,
        solution=row.solution,
        system_name=row.system_name,
        success_count=row.times_worked,
    )


def memory_to_routing_pattern(row: CompanyMemory) -> RoutingPattern:
    value = row.value_json or {}
    assignee_id = value.get("assignee_id")
    return RoutingPattern(
        id=str(row.id),
        key=row.key,
        assignee_id=str(assignee_id) if assignee_id is not None else None,
        confidence=row.confidence,
        times_used=row.times_used,
        times_confirmed=row.times_confirmed,
        assignee_name=value.get("assignee_name"),
        reason=value.get("reason"),
    )


def _routing_value(
    assignee_id: str | None,
    assignee_name: str | None,
    reason: str | None,
    existing: dict[str, Any] | None = None,
) -> dict[str, Any]:
    value = dict(existing or {})
    value["assignee_id"] = assignee_id
    value["assignee_name"] = assignee_name
    if reason is not None:
        value["reason"] = reason
    return value


class SqlHistoryStore:
    """``MutableHistoryStore`` over ``resolution_memory`` and routing memories."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        workspace_id: str,
        *,
        max_candidates: int = 500,
        policy: MemoryPolicy = DEFAULT_MEMORY_POLICY,
    ) -> None:
        self._session_factory = session_factory
        self._workspace_id = workspace_id
        self._max_candidates = max(1, max_candidates)
        self._policy = policy

    def search_resolutions(self, keyword: str, system_name: str | None = None) -> list[ResolutionRecord]:
        terms = query_terms(keyword, self._policy)
        clauses = []
        for term in terms:
            pattern = f"%{term}%"
            clauses.append(ResolutionMemory.problem_pattern.ilike(pattern))
            clauses.append(ResolutionMemory.solution.ilike(pattern))
        if system_name:
            clauses.append(func.lower(ResolutionMemory.system_name) == system_name.lower())
        if not clauses:
            return []
        stmt = (
            select(ResolutionMemory)
            .where(and_(ResolutionMemory.workspace_id == self._workspace_id, or_(*clauses)))
            .order_by(ResolutionMemory.times_worked.desc(), ResolutionMemory.id.asc())
            .limit(self._max_candidates)
        )
        with self._session_factory() as db:
            return [resolution_to_record(row) for row in db.scalars(stmt).all()]

    def store_resolution(
        self,
        problem_pattern: str,
        solution: str,
        *,
        system_name: str | None = None,
        resolved_by: str | None = None,
        task_id: str | None = None,
    ) -> ResolutionRecord:
        if not problem_pattern.strip() or not solution.strip():
            raise ValueError("Problem pattern and solution are required.")
        with self._session_factory() as db:
            row = ResolutionMemory(
                workspace_id=self._workspace_id,
                problem_pattern=problem_pattern.strip(),
                solution=solution.strip(),
                system_name=system_name.strip() if system_name and system_name.strip() else None,
                resolved_by=resolved_by,
                task_id=task_id,
                times_worked=1,
                confirmation_keys_json=[],
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info("history.resolution_stored workspace_id=%s id=%s", self._workspace_id, row.id)
            return resolution_to_record(row)

    def record_success(self, resolution_id: str, confirmation_key: str) -> ResolutionRecord | None:
        row_id = _parse_id(resolution_id)
        if row_id is None:
            return None
        stmt = (
            select(ResolutionMemory)
            .where(ResolutionMemory.id == row_id, ResolutionMemory.workspace_id == self._workspace_id)
            .with_for_update()
        )
        with self._session_factory() as db:
            row = db.scalars(stmt).first()
            if row is None:
                return None
            keys = list(row.confirmation_keys_json or [])
            if confirmation_key in keys:
                return resolution_to_record(row)
            row.confirmation_keys_json = [*keys, confirmation_key]
            # Server-side increment.
            row.times_worked = ResolutionMemory.times_worked + 1
            db.commit()
            db.refresh(row)
            return resolution_to_record(row)

    def find_routing_pattern(self, key: str) -> RoutingPattern | None:
        """Best pattern whose key contains ``key``; an exact key wins over higher confidence."""

        normalized = normalize_routing_key(key)
        if not normalized:
            return None
        stmt = (
            select(CompanyMemory)
            .where(
                CompanyMemory.workspace_id == self._workspace_id,
                CompanyMemory.memory_type == ROUTING_MEMORY_TYPE,
                CompanyMemory.key.ilike(f"%{_like_escape(normalized)}%", escape="\\"),
            )
            .order_by(
                case((CompanyMemory.key == normalized, 0), else_=1),
                CompanyMemory.confidence.desc(),
                CompanyMemory.id.asc(),
            )
            .limit(1)
        )
        with self._session_factory() as db:
            row = db.scalars(stmt).first()
            return memory_to_routing_pattern(row) if row is not None else None

    def get_routing_pattern(self, pattern_id: str) -> RoutingPattern | None:
        row_id = _parse_id(pattern_id)
        if row_id is None:
            return None
        with self._session_factory() as db:
            row = db.get(CompanyMemory, row_id)
            if row is None or row.workspace_id != self._workspace_id or row.memory_type != ROUTING_MEMORY_TYPE:
                return None
            return memory_to_routing_pattern(row)

    def create_routing_pattern(
        self,
        key: str,
        assignee_id: str,
        *,
        confidence: float,
        assignee_name: str | None = None,
        reason: str | None = None,
    ) -> RoutingPattern:
        with self._session_factory() as db:
            row = CompanyMemory(
                workspace_id=self._workspace_id,
                memory_type=ROUTING_MEMORY_TYPE,
                key=normalize_routing_key(key),
                value_json=_routing_value(assignee_id, assignee_name, reason),
                confidence=confidence,
                times_used=0,
                times_confirmed=0,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return memory_to_routing_pattern(row)

    def save_routing_pattern(self, pattern: RoutingPattern) -> RoutingPattern:
        row_id = _parse_id(pattern.id)
        with self._session_factory() as db:
            row = db.get(CompanyMemory, row_id) if row_id is not None else None
            if row is None or row.workspace_id != self._workspace_id:
                raise LookupError(f"Routing pattern {pattern.id} not found.")
            row.value_json = _routing_value(
                pattern.assignee_id,
                pattern.assignee_name,
                pattern.reason,
                existing=row.value_json,
            )
            row.confidence = pattern.confidence
            if pattern.times_used > row.times_used:
                row.last_used = datetime.now(timezone.utc)
            row.times_used = pattern.times_used
            row.times_confirmed = pattern.times_confirmed
            db.commit()
            db.refresh(row)
            return memory_to_routing_pattern(row)
