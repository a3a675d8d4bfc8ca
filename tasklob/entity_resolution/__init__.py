"""Entity resolution package."""

from tasklob.entity_resolution.resolver import (
    RESOLVER_VERSION,
    EntityResolver,
    ResolutionPolicy,
    resolve_entity,
    select_match,
)
from tasklob.entity_resolution.similarity import fuzzy_score
from tasklob.entity_resolution.store import EntityStore
from tasklob.entity_resolution.types import (
    AmbiguousEntity,
    EntityMatch,
    EntityResolutionBatch,
    NewEntity,
    ResolvedEntity,
)

__all__ = [
    "RESOLVER_VERSION",
    "AmbiguousEntity",
    "EntityMatch",
    "EntityResolutionBatch",
    "EntityResolver",
    "EntityStore",
    "NewEntity",
    "ResolutionPolicy",
    "ResolvedEntity",
    "fuzzy_score",
    "resolve_entity",
    "select_match",
]
