"""Context enrichment: parse -> (resolve entities || aggregate memory) -> assemble."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Protocol

from tasklob.entity_resolution.resolver import EntityResolver
from tasklob.entity_resolution.types import AmbiguousEntity, ResolvedEntity
from tasklob.errors import EnrichmentCancelled, InvalidInputError
from tasklob.memory.aggregator import MemoryAggregator
from tasklob.memory.types import MemoryContext
from tasklob.parsing.lob_parser import LobParser
from tasklob.parsing.types import ExtractedEntity, ParsedTask

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class RawLob:
    """One submitted chunk of unstructured input. Never mutated after creation."""

    text: str
    sender_id: str
    workspace_id: str
    submitted_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class EntityBundle:
    extracted: list[ExtractedEntity] = field(default_factory=list)
    resolved: list[ResolvedEntity] = field(default_factory=list)
    ambiguous: list[AmbiguousEntity] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class EnrichmentDiagnostics:
    """Non-fatal problems encountered while enriching one lob."""

    dropped_tasks: int = 0
    dropped_entities: int = 0
    degraded_entities: list[str] = field(default_factory=list)
    degraded_queries: list[str] = field(default_factory=list)
    archived: bool | None = None
    archive_id: str | None = None


@dataclass(frozen=True, slots=True)
class EnrichedLob:
    lob: RawLob
    tasks: list[ParsedTask]
    entities: EntityBundle
    context: MemoryContext
    diagnostics: EnrichmentDiagnostics = field(default_factory=EnrichmentDiagnostics)


class LobArchive(Protocol):
    """Stores a lob and its enrichment for later reference."""

    def store_lob(self, lob: RawLob, enriched: EnrichedLob) -> str:
        """Persist the lob and return its archive id."""


def validate_raw_lob(raw_lob: RawLob) -> None:
    """Reject unusable input before any external call."""

    if not isinstance(raw_lob.text, str) or not raw_lob.text.strip():
        raise InvalidInputError("Lob text is required and cannot be blank.")
    if not isinstance(raw_lob.workspace_id, str) or not raw_lob.workspace_id.strip():
        raise InvalidInputError("Lob workspace id is required.")


class ContextEnrichmentPipeline:
    """Turns a raw lob into tasks, resolved/ambiguous entities and prior context."""

    def __init__(
        self,
        parser: LobParser,
        resolver: EntityResolver,
        aggregator: MemoryAggregator,
        *,
        archive: LobArchive | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._parser = parser
        self._resolver = resolver
        self._aggregator = aggregator
        self._archive = archive
        self._timeout_seconds = timeout_seconds

    async def enrich(
        self,
        raw_lob: RawLob,
        *,
        company_context: Mapping[str, Any] | None = None,
        timeout_seconds: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> EnrichedLob:
        """Enrich one lob, all-or-nothing.

        Parser failures propagate unchanged. A timeout or a set
        ``cancel_event`` abandons in-flight lookups and raises
        ``EnrichmentCancelled``; no partial result is returned.
        """

        validate_raw_lob(raw_lob)
        timeout = timeout_seconds if timeout_seconds is not None else self._timeout_seconds

        work = asyncio.ensure_future(self._run(raw_lob, company_context))
        waiter = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None
        pending = {work} if waiter is None else {work, waiter}
        try:
            done, _ = await asyncio.wait(pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if waiter is not None:
                waiter.cancel()
            if not work.done():
                work.cancel()

        if work in done:
            return work.result()

        await asyncio.wait({work})
        if waiter is not None and cancel_event is not None and cancel_event.is_set():
            logger.warning("enrichment.cancelled workspace_id=%s reason=caller", raw_lob.workspace_id)
            raise EnrichmentCancelled("Enrichment was cancelled by the caller.")
        logger.warning("enrichment.cancelled workspace_id=%s reason=timeout timeout_s=%s", raw_lob.workspace_id, timeout)
        raise EnrichmentCancelled(f"Enrichment timed out after {timeout}s.")

    async def _run(self, raw_lob: RawLob, company_context: Mapping[str, Any] | None) -> EnrichedLob:
        total_started = perf_counter()

        started = perf_counter()
        try:
            parsed = await asyncio.to_thread(self._parser.parse, raw_lob.text, company_context)
        except Exception:
            logger.warning("enrichment.parse_failed workspace_id=%s", raw_lob.workspace_id)
            raise
        parse_ms = (perf_counter() - started) * 1000.0

        started = perf_counter()
        resolution, context = await asyncio.gather(
            self._resolver.resolve_all(parsed.entities),
            self._aggregator.get_full_context(parsed.tasks, parsed.entities),
        )
        fan_out_ms = (perf_counter() - started) * 1000.0

        enriched = EnrichedLob(
            lob=raw_lob,
            tasks=list(parsed.tasks),
            entities=EntityBundle(
                extracted=list(parsed.entities),
                resolved=resolution.resolved,
                ambiguous=resolution.ambiguous,
            ),
            context=context,
            diagnostics=EnrichmentDiagnostics(
                dropped_tasks=parsed.dropped_tasks,
                dropped_entities=parsed.dropped_entities,
                degraded_entities=resolution.degraded_mentions,
                degraded_queries=list(context.degraded_queries),
            ),
        )
        if self._archive is not None:
            enriched = await self._archive_lob(self._archive, raw_lob, enriched)

        logger.info(
            (
                "enrichment.timing workspace_id=%s tasks=%d entities=%d resolved=%d ambiguous=%d "
                "resolutions=%d parse_ms=%.2f fan_out_ms=%.2f total_ms=%.2f"
            ),
            raw_lob.workspace_id,
            len(enriched.tasks),
            len(enriched.entities.extracted),
            len(enriched.entities.resolved),
            len(enriched.entities.ambiguous),
            len(enriched.context.resolutions),
            parse_ms,
            fan_out_ms,
            (perf_counter() - total_started) * 1000.0,
        )
        return enriched

    async def _archive_lob(self, archive: LobArchive, raw_lob: RawLob, enriched: EnrichedLob) -> EnrichedLob:
        try:
            archive_id = await asyncio.to_thread(archive.store_lob, raw_lob, enriched)
        except Exception:
            logger.exception("enrichment.archive_failed workspace_id=%s", raw_lob.workspace_id)
            return replace(enriched, diagnostics=replace(enriched.diagnostics, archived=False))
        return replace(
            enriched,
            diagnostics=replace(enriched.diagnostics, archived=True, archive_id=archive_id),
        )
