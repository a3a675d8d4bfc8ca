"""Knowledge-store interface consumed by entity resolution."""

from typing import Protocol

from tasklob.entity_resolution.types import EntityMatch, NewEntity
from tasklob.parsing.types import EntityType


class EntityStore(Protocol):
    """Backing store of known people, companies, systems and accounts."""

    def find_candidates(self, entity_type: EntityType, mention: str) -> list[EntityMatch]:
        """Return candidate records of ``entity_type`` in any order.

        ``EntityMatch.confidence`` is the store's own trust in the record,
        not a match score.
        """

    def add_entity(self, entity: NewEntity) -> EntityMatch:
        """Register a new record and return its identity."""
