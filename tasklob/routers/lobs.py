"""Lob parsing and enrichment routes."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.orm import Session, sessionmaker

from tasklob.config import Settings, get_settings
from tasklob.db.dependencies import get_session_factory
from tasklob.errors import EnrichmentCancelled, InvalidInputError, ParseFailure, ProviderError
from tasklob.parsing.completion import CompletionService, build_completion_service
from tasklob.pipeline import RawLob
from tasklob.schemas.common import ApiResponse
from tasklob.schemas.lob import (
    EnrichedLobRead,
    LobEnrichRequest,
    LobParseRequest,
    LobSessionRead,
    ParseResultRead,
)
from tasklob.services.enrichment import build_enrichment_pipeline, build_lob_parser
from tasklob.stores.archive import SqlLobArchive

router = APIRouter(prefix="/lobs")


def get_completion_service(settings: Settings = Depends(get_settings)) -> CompletionService:
    """Return the configured completion client."""

    try:
        return build_completion_service(settings)
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.post("/parse", response_model=ApiResponse[ParseResultRead])
def parse_lob(
    payload: LobParseRequest,
    completion: CompletionService = Depends(get_completion_service),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[ParseResultRead]:
    """Split raw text into tasks and entity mentions without touching any store."""

    parser = build_lob_parser(completion, settings)
    try:
        result = parser.parse(payload.text, payload.company_context)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (ProviderError, ParseFailure) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ApiResponse(data=ParseResultRead.model_validate(result))


@router.post("/enrich", response_model=ApiResponse[EnrichedLobRead])
async def enrich_lob(
    payload: LobEnrichRequest,
    completion: CompletionService = Depends(get_completion_service),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[EnrichedLobRead]:
    """Parse, resolve and contextualize one lob for a workspace."""

    pipeline = build_enrichment_pipeline(completion, session_factory, payload.workspace_id, settings)
    raw_lob = RawLob(
        text=payload.text,
        sender_id=payload.sender_id,
        workspace_id=payload.workspace_id,
        submitted_at=payload.submitted_at or datetime.now(timezone.utc),
    )
    try:
        enriched = await pipeline.enrich(
            raw_lob,
            company_context=payload.company_context,
            timeout_seconds=payload.timeout_seconds,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (ProviderError, ParseFailure) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except EnrichmentCancelled as exc:
        raise HTTPException(status_code=504, detail=str(exc)) from exc
    return ApiResponse(data=EnrichedLobRead.model_validate(enriched))


@router.get("/{archive_id}", response_model=ApiResponse[LobSessionRead])
def get_archived_lob(
    archive_id: str = Path(..., min_length=1),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> ApiResponse[LobSessionRead]:
    """Return an archived lob with the enrichment stored at submission time."""

    lob_session = SqlLobArchive(session_factory).get_lob(archive_id)
    if lob_session is None:
        raise HTTPException(status_code=404, detail="Lob not found")
    return ApiResponse(data=LobSessionRead.model_validate(lob_session))
