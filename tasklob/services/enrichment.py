"""Wiring of the enrichment pipeline for one workspace."""

from sqlalchemy.orm import Session, sessionmaker

from tasklob.config import Settings
from tasklob.entity_resolution.resolver import EntityResolver, ResolutionPolicy
from tasklob.memory.aggregator import MemoryAggregator, MemoryPolicy
from tasklob.parsing.completion import CompletionOptions, CompletionService
from tasklob.parsing.lob_parser import LobParser
from tasklob.pipeline import ContextEnrichmentPipeline
from tasklob.stores.archive import SqlLobArchive
from tasklob.stores.entities import SqlEntityStore
from tasklob.stores.history import SqlHistoryStore


def build_lob_parser(completion: CompletionService, settings: Settings) -> LobParser:
    return LobParser(
        completion,
        options=CompletionOptions(
            temperature=settings.parser_temperature,
            max_tokens=settings.parser_max_tokens,
        ),
        max_tasks=settings.max_tasks_per_lob,
    )


def build_entity_resolver(
    session_factory: sessionmaker[Session],
    workspace_id: str,
    settings: Settings,
) -> EntityResolver:
    store = SqlEntityStore(session_factory, workspace_id, max_candidates=settings.max_store_candidates)
    return EntityResolver(
        store,
        policy=ResolutionPolicy.from_settings(settings),
        max_concurrent_lookups=settings.max_concurrent_lookups,
    )


def build_enrichment_pipeline(
    completion: CompletionService,
    session_factory: sessionmaker[Session],
    workspace_id: str,
    settings: Settings,
) -> ContextEnrichmentPipeline:
    """Assemble parser, resolver, aggregator and archive over the SQL stores."""

    policy = MemoryPolicy.from_settings(settings)
    history = SqlHistoryStore(
        session_factory,
        workspace_id,
        max_candidates=settings.max_store_candidates,
        policy=policy,
    )
    aggregator = MemoryAggregator(
        history,
        policy=policy,
        max_concurrent_lookups=settings.max_concurrent_lookups,
    )
    return ContextEnrichmentPipeline(
        build_lob_parser(completion, settings),
        build_entity_resolver(session_factory, workspace_id, settings),
        aggregator,
        archive=SqlLobArchive(session_factory),
        timeout_seconds=settings.enrichment_timeout_seconds,
    )
