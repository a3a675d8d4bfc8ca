"""Explicit routing-pattern learning. Retrieval never changes a pattern."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Literal

from tasklob.memory.history import MutableHistoryStore
from tasklob.memory.types import RoutingPattern

logger = logging.getLogger(__name__)

INITIAL_ROUTING_CONFIDENCE = 0.5
CONFIRM_STEP = 0.1
CONFLICT_PENALTY = 0.2
CONFLICT_FLOOR = 0.3


@dataclass(frozen=True, slots=True)
class RoutingLearnResult:
    pattern: RoutingPattern
    action: Literal["created", "confirmed", "reassigned"]


def confirm_routing(pattern: RoutingPattern) -> RoutingPattern:
    """Raise confidence one step, capped at 1.0."""

    return replace(
        pattern,
        confidence=round(min(1.0, pattern.confidence + CONFIRM_STEP), 6),
        times_confirmed=pattern.times_confirmed + 1,
    )


def reassign_routing(
    pattern: RoutingPattern,
    assignee_id: str,
    *,
    assignee_name: str | None = None,
) -> RoutingPattern:
    """Point the pattern at a new assignee and lower confidence; never raises it."""

    lowered = max(CONFLICT_FLOOR, pattern.confidence - CONFLICT_PENALTY)
    return replace(
        pattern,
        assignee_id=assignee_id,
        assignee_name=assignee_name,
        confidence=round(min(pattern.confidence, lowered), 6),
    )


def record_routing_usage(pattern: RoutingPattern) -> RoutingPattern:
    return replace(pattern, times_used=pattern.times_used + 1)


def learn_routing(
    store: MutableHistoryStore,
    key: str,
    assignee_id: str,
    *,
    assignee_name: str | None = None,
    reason: str | None = None,
) -> RoutingLearnResult:
    """Record that ``assignee_id`` handled ``key``.

    Same assignee as the existing pattern confirms it, a different one
    reassigns it at lower confidence, and an unknown key creates a pattern.
    """

    clean_key = " ".join(key.split())
    if not clean_key:
        raise ValueError("Routing key cannot be blank.")
    existing = store.find_routing_pattern(clean_key)
    if existing is None:
        created = store.create_routing_pattern(
            clean_key,
            assignee_id,
            confidence=INITIAL_ROUTING_CONFIDENCE,
            assignee_name=assignee_name,
            reason=reason,
        )
        logger.info("routing.learned action=created key=%r assignee_id=%s", clean_key, assignee_id)
        return RoutingLearnResult(pattern=created, action="created")

    if existing.assignee_id == assignee_id:
        updated = store.save_routing_pattern(confirm_routing(existing))
        action: Literal["created", "confirmed", "reassigned"] = "confirmed"
    else:
        updated = store.save_routing_pattern(
            reassign_routing(existing, assignee_id, assignee_name=assignee_name)
        )
        action = "reassigned"
    logger.info(
        "routing.learned action=%s key=%r assignee_id=%s confidence=%.2f",
        action,
        clean_key,
        assignee_id,
        updated.confidence,
    )
    return RoutingLearnResult(pattern=updated, action=action)


def confirm_routing_pattern(store: MutableHistoryStore, pattern_id: str) -> RoutingPattern | None:
    pattern = store.get_routing_pattern(pattern_id)
    if pattern is None:
        return None
    return store.save_routing_pattern(confirm_routing(pattern))


def record_routing_pattern_usage(store: MutableHistoryStore, pattern_id: str) -> RoutingPattern | None:
    pattern = store.get_routing_pattern(pattern_id)
    if pattern is None:
        return None
    return store.save_routing_pattern(record_routing_usage(pattern))
