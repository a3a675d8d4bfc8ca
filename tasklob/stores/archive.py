"""Lob archive backed by the ``lob_sessions`` table."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from tasklob.models.lob_session import LobSession
from tasklob.pipeline import EnrichedLob, RawLob

logger = logging.getLogger(__name__)


def enriched_snapshot(enriched: EnrichedLob) -> dict[str, Any]:
    """JSON-safe snapshot of the enrichment stored next to the raw input."""

    diagnostics = asdict(enriched.diagnostics)
    diagnostics.pop("archived", None)
    diagnostics.pop("archive_id", None)
    return {
        "tasks": [asdict(task) for task in enriched.tasks],
        "entities": asdict(enriched.entities),
        "context": asdict(enriched.context),
        "diagnostics": diagnostics,
    }


class SqlLobArchive:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def store_lob(self, lob: RawLob, enriched: EnrichedLob) -> str:
        with self._session_factory() as db:
            row = LobSession(
                workspace_id=lob.workspace_id,
                sender_id=lob.sender_id,
                raw_input=lob.text,
                submitted_at=lob.submitted_at,
                parsed_data_json=enriched_snapshot(enriched),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info("archive.lob_stored workspace_id=%s id=%s tasks=%d", lob.workspace_id, row.id, len(enriched.tasks))
            return str(row.id)

    def get_lob(self, archive_id: str) -> LobSession | None:
        try:
            row_id = int(archive_id)
        except (TypeError, ValueError):
            return None
        with self._session_factory() as db:
            return db.get(LobSession, row_id)
