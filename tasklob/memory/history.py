"""History-store interfaces for resolution and routing memory."""

from typing import Protocol

from tasklob.memory.types import ResolutionRecord, RoutingPattern


class HistoryStore(Protocol):
    """Read side used by context aggregation."""

    def search_resolutions(self, keyword: str, system_name: str | None = None) -> list[ResolutionRecord]:
        """Return resolution records that may relate to ``keyword``, unscored."""

    def find_routing_pattern(self, key: str) -> RoutingPattern | None:
        """Return the most confident routing pattern for ``key``, if any."""


class MutableHistoryStore(HistoryStore, Protocol):
    """Write side used by explicit learning operations."""

    def store_resolution(
        self,
        problem_pattern: str,
        solution: str,
        *,
        system_name: str | None = None,
        resolved_by: str | None = None,
        task_id: str | None = None,
    ) -> ResolutionRecord:
        """Persist a new problem -> fix pair."""

    def record_success(self, resolution_id: str, confirmation_key: str) -> ResolutionRecord | None:
        """Count one success for ``confirmation_key``; repeats of the same key are no-ops."""

    def get_routing_pattern(self, pattern_id: str) -> RoutingPattern | None:
        """Return one routing pattern by id."""

    def create_routing_pattern(
        self,
        key: str,
        assignee_id: str,
        *,
        confidence: float,
        assignee_name: str | None = None,
        reason: str | None = None,
    ) -> RoutingPattern:
        """Persist a new routing pattern."""

    def save_routing_pattern(self, pattern: RoutingPattern) -> RoutingPattern:
        """Persist an updated routing pattern."""
