"""Tests for success-weighted context aggregation and routing memory."""

from __future__ import annotations

import unittest
from dataclasses import replace

from tasklob.memory.aggregator import (
    MemoryAggregator,
    derive_keywords,
    derive_systems,
    query_terms,
    score_resolution,
)
from tasklob.memory.routing import (
    confirm_routing,
    confirm_routing_pattern,
    learn_routing,
    reassign_routing,
    record_routing_pattern_usage,
)
from tasklob.memory.types import ResolutionRecord, RoutingPattern
from tasklob.parsing.types import ExtractedEntity, ParsedTask


def _task(summary: str, *, system: str | None = None) -> ParsedTask:
    return ParsedTask(
        position=1,
        raw_chunk=summary,
        summary=summary,
        classification="task",
        system=system,
    )


class _StubHistoryStore:
    def __init__(self, records: list[ResolutionRecord] | None = None) -> None:
        self.records = list(records or [])
        self.patterns: dict[str, RoutingPattern] = {}
        self.failing_keywords: set[str] = set()
        self.failing_routes: set[str] = set()
        self.confirmations: dict[str, set[str]] = {}

    def search_resolutions(self, keyword: str, system_name: str | None = None) -> list[ResolutionRecord]:
        if keyword in self.failing_keywords:
            raise ConnectionError("history store unavailable")
        return list(self.records)

    def find_routing_pattern(self, key: str) -> RoutingPattern | None:
        if key in self.failing_routes:
            raise ConnectionError("history store unavailable")
        return self.patterns.get(key.lower())

    def get_routing_pattern(self, pattern_id: str) -> RoutingPattern | None:
        return next((pattern for pattern in self.patterns.values() if pattern.id == pattern_id), None)

    def create_routing_pattern(self, key, assignee_id, *, confidence, assignee_name=None, reason=None):  # noqa: ANN001
        pattern = RoutingPattern(
            id=f"r{len(self.patterns) + 1}",
            key=key.lower(),
            assignee_id=assignee_id,
            confidence=confidence,
            assignee_name=assignee_name,
            reason=reason,
        )
        self.patterns[pattern.key] = pattern
        return pattern

    def save_routing_pattern(self, pattern: RoutingPattern) -> RoutingPattern:
        self.patterns[pattern.key] = pattern
        return pattern


class ScoringTests(unittest.TestCase):
    def test_keywords_and_systems_are_deduplicated_in_order(self) -> None:
        tasks = [_task("Fix login", system="WordPress"), _task("Update plugin", system="wordpress")]
        entities = [
            ExtractedEntity(mention="WordPress", type="system"),
            ExtractedEntity(mention="Sarah", type="person"),
        ]

        self.assertEqual(derive_keywords(tasks, entities), ["wordpress", "sarah"])
        self.assertEqual(derive_systems(tasks, entities), ["WordPress"])

    def test_query_terms_skip_short_words_and_cap_at_five(self) -> None:
        self.assertEqual(query_terms("the login bug on our app"), ["login"])
        self.assertEqual(
            len(query_terms("alpha bravo charlie delta echoes foxtrot golfer")),
            5,
        )

    def test_relevance_weights_problem_solution_and_system(self) -> None:
        record = ResolutionRecord(
            id="r1",
            problem_pattern="Login page broken",
            solution="Cleared the login cache",
            system_name="WordPress",
        )

        self.assertEqual(score_resolution(record, ["login"]), 1.5)
        self.assertEqual(score_resolution(record, ["login"], "wordpress"), 3.0)
        self.assertIsNone(score_resolution(record, ["stripe"]))
        self.assertIsNone(score_resolution(record, []))


class MemoryAggregatorTests(unittest.IsolatedAsyncioTestCase):
    async def test_success_count_breaks_equal_relevance(self) -> None:
        store = _StubHistoryStore(
            [
                ResolutionRecord(id="unproven", problem_pattern="Login broken", solution="Reset it", success_count=0),
                ResolutionRecord(id="proven", problem_pattern="Login broken", solution="Reset it", success_count=3),
            ]
        )

        context = await MemoryAggregator(store).get_full_context(
            [], [ExtractedEntity(mention="login", type="system")]
        )

        self.assertEqual([item.record.id for item in context.resolutions], ["proven", "unproven"])
        self.assertAlmostEqual(context.resolutions[0].score, context.resolutions[1].score * 1.3)

    async def test_results_are_deduplicated_limited_and_repeatable(self) -> None:
        records = [
            ResolutionRecord(
                id=f"r{i}",
                problem_pattern=f"Login error {i} on wordpress",
                solution="Clear cache",
                system_name="WordPress",
                success_count=i % 3,
            )
            for i in range(8)
        ]
        store = _StubHistoryStore(records)
        tasks = [_task("Fix the login error", system="WordPress")]
        entities = [
            ExtractedEntity(mention="login error", type="system"),
            ExtractedEntity(mention="WordPress", type="system"),
        ]
        aggregator = MemoryAggregator(store)

        first = await aggregator.get_full_context(tasks, entities)
        second = await aggregator.get_full_context(tasks, entities)

        ids = [item.record.id for item in first.resolutions]
        self.assertLessEqual(len(ids), 5)
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(ids, [item.record.id for item in second.resolutions])
        self.assertEqual(first.keywords, ["login error", "wordpress"])

    async def test_routing_suggestions_flag_low_confidence(self) -> None:
        store = _StubHistoryStore()
        store.patterns["wordpress"] = RoutingPattern(
            id="r1", key="wordpress", assignee_id="u1", confidence=0.6, assignee_name="Sarah"
        )
        store.patterns["stripe"] = RoutingPattern(
            id="r2", key="stripe", assignee_id="u2", confidence=0.9, reason="Owns billing"
        )

        context = await MemoryAggregator(store).get_full_context(
            [_task("Fix checkout", system="Stripe")],
            [ExtractedEntity(mention="WordPress", type="system")],
        )

        by_system = {suggestion.system: suggestion for suggestion in context.routing}
        self.assertTrue(by_system["WordPress"].needs_user_input)
        self.assertEqual(by_system["WordPress"].reason, "Usually handles WordPress issues")
        self.assertFalse(by_system["Stripe"].needs_user_input)
        self.assertEqual(by_system["Stripe"].reason, "Owns billing")
        self.assertEqual(store.patterns["wordpress"].times_used, 0)

    async def test_failed_queries_are_skipped_and_reported(self) -> None:
        store = _StubHistoryStore(
            [ResolutionRecord(id="r1", problem_pattern="Stripe payout failed", solution="Re-verify bank")]
        )
        store.failing_keywords.add("wordpress")
        store.failing_routes.add("WordPress")

        context = await MemoryAggregator(store).get_full_context(
            [_task("Fix payouts", system="Stripe")],
            [ExtractedEntity(mention="WordPress", type="system")],
        )

        self.assertEqual([item.record.id for item in context.resolutions], ["r1"])
        self.assertIn("resolutions:wordpress", context.degraded_queries)
        self.assertIn("routing:WordPress", context.degraded_queries)

    async def test_no_keywords_returns_empty_context(self) -> None:
        context = await MemoryAggregator(_StubHistoryStore()).get_full_context([], [])

        self.assertEqual(context.resolutions, [])
        self.assertEqual(context.routing, [])
        self.assertEqual(context.degraded_queries, [])


class RoutingLearningTests(unittest.TestCase):
    def test_confirm_caps_at_one(self) -> None:
        pattern = RoutingPattern(id="r1", key="wordpress", assignee_id="u1", confidence=0.95)

        confirmed = confirm_routing(pattern)

        self.assertEqual(confirmed.confidence, 1.0)
        self.assertEqual(confirmed.times_confirmed, 1)
        self.assertEqual(pattern.confidence, 0.95)

    def test_reassign_lowers_confidence_with_floor(self) -> None:
        pattern = RoutingPattern(id="r1", key="wordpress", assignee_id="u1", confidence=0.4)

        reassigned = reassign_routing(pattern, "u2", assignee_name="Mike")

        self.assertEqual(reassigned.assignee_id, "u2")
        self.assertEqual(reassigned.confidence, 0.3)
        self.assertEqual(reassign_routing(replace(pattern, confidence=0.2), "u3").confidence, 0.2)

    def test_learn_creates_confirms_then_reassigns(self) -> None:
        store = _StubHistoryStore()

        created = learn_routing(store, "WordPress", "u1", assignee_name="Sarah")
        confirmed = learn_routing(store, "wordpress", "u1")
        reassigned = learn_routing(store, "wordpress", "u2", assignee_name="Mike")

        self.assertEqual(created.action, "created")
        self.assertEqual(created.pattern.confidence, 0.5)
        self.assertEqual(confirmed.action, "confirmed")
        self.assertAlmostEqual(confirmed.pattern.confidence, 0.6)
        self.assertEqual(reassigned.action, "reassigned")
        self.assertAlmostEqual(reassigned.pattern.confidence, 0.4)
        self.assertEqual(reassigned.pattern.assignee_id, "u2")
        with self.assertRaises(ValueError):
            learn_routing(store, "   ", "u1")

    def test_explicit_confirm_and_usage_by_id(self) -> None:
        store = _StubHistoryStore()
        created = learn_routing(store, "stripe", "u1").pattern

        self.assertAlmostEqual(confirm_routing_pattern(store, created.id).confidence, 0.6)
        self.assertEqual(record_routing_pattern_usage(store, created.id).times_used, 1)
        self.assertIsNone(confirm_routing_pattern(store, "missing"))


if __name__ == "__main__":
    unittest.main()
