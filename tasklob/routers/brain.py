"""Company brain routes: entities, resolutions, routing and onboarding."""

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.orm import Session, sessionmaker

from tasklob.config import Settings, get_settings
from tasklob.db.dependencies import get_session_factory
from tasklob.entity_resolution.resolver import select_match
from tasklob.entity_resolution.types import AmbiguousEntity, EntityMatch
from tasklob.memory.aggregator import MemoryPolicy
from tasklob.memory.routing import confirm_routing_pattern, learn_routing, record_routing_pattern_usage
from tasklob.parsing.types import ExtractedEntity
from tasklob.schemas.brain import (
    BrainSeedRead,
    BrainSeedRequest,
    EntityCreateRequest,
    EntitySelectRequest,
    ResolutionCreateRequest,
    ResolutionSuccessRequest,
    RoutingLearnRead,
    RoutingLearnRequest,
    RoutingPatternRead,
)
from tasklob.schemas.common import ApiResponse
from tasklob.schemas.lob import EntityMatchRead, ResolutionRecordRead, ResolvedEntityRead
from tasklob.services.brain import seed_company_brain
from tasklob.services.enrichment import build_entity_resolver
from tasklob.stores.entities import SqlEntityStore
from tasklob.stores.history import SqlHistoryStore

router = APIRouter(prefix="/workspaces/{workspace_id}")
global_router = APIRouter()


def _history_store(
    workspace_id: str,
    session_factory: sessionmaker[Session],
    settings: Settings,
) -> SqlHistoryStore:
    return SqlHistoryStore(
        session_factory,
        workspace_id,
        max_candidates=settings.max_store_candidates,
        policy=MemoryPolicy.from_settings(settings),
    )


@router.post("/entities", response_model=ApiResponse[EntityMatchRead])
def create_entity(
    payload: EntityCreateRequest,
    workspace_id: str = Path(..., min_length=1),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[EntityMatchRead]:
    """Register a user-confirmed person, company, system or account."""

    resolver = build_entity_resolver(session_factory, workspace_id, settings)
    try:
        created = resolver.add_entity(
            payload.name,
            payload.type,
            role=payload.role,
            email=payload.email,
            metadata=payload.metadata,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(data=EntityMatchRead.model_validate(created))


@global_router.post("/entities/select", response_model=ApiResponse[ResolvedEntityRead])
def select_entity_match(payload: EntitySelectRequest) -> ApiResponse[ResolvedEntityRead]:
    """Turn a human's pick for an ambiguous entity into a resolved entity."""

    matches = tuple(
        EntityMatch(
            id=match.id,
            name=match.name,
            confidence=match.confidence,
            role=match.role,
            email=match.email,
            metadata=dict(match.metadata),
        )
        for match in payload.ambiguous.possible_matches
    )
    chosen = next((match for match in matches if match.id == payload.chosen_id), None)
    if chosen is None:
        raise HTTPException(status_code=404, detail="Chosen match is not one of the possible matches")

    entity = payload.ambiguous.entity
    ambiguous = AmbiguousEntity(
        entity=ExtractedEntity(
            mention=entity.mention,
            type=entity.type,
            role=entity.role,
            confidence=entity.confidence,
            context_clues=tuple(entity.context_clues),
        ),
        possible_matches=matches,
        clarification_question=payload.ambiguous.clarification_question,
        note=payload.ambiguous.note,
    )
    return ApiResponse(data=ResolvedEntityRead.model_validate(select_match(ambiguous, chosen)))


@router.post("/resolutions", response_model=ApiResponse[ResolutionRecordRead])
def create_resolution(
    payload: ResolutionCreateRequest,
    workspace_id: str = Path(..., min_length=1),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[ResolutionRecordRead]:
    """Remember how a problem was fixed."""

    record = _history_store(workspace_id, session_factory, settings).store_resolution(
        payload.problem_pattern,
        payload.solution,
        system_name=payload.system_name,
        resolved_by=payload.resolved_by,
        task_id=payload.task_id,
    )
    return ApiResponse(data=ResolutionRecordRead.model_validate(record))


@router.post("/resolutions/{resolution_id}/success", response_model=ApiResponse[ResolutionRecordRead])
def record_resolution_success(
    payload: ResolutionSuccessRequest,
    workspace_id: str = Path(..., min_length=1),
    resolution_id: str = Path(..., min_length=1),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[ResolutionRecordRead]:
    """Count one success for a resolution; repeating a confirmation key is a no-op."""

    record = _history_store(workspace_id, session_factory, settings).record_success(
        resolution_id,
        payload.confirmation_key,
    )
    if record is None:
        raise HTTPException(status_code=404, detail="Resolution not found")
    return ApiResponse(data=ResolutionRecordRead.model_validate(record))


@router.post("/routing/learn", response_model=ApiResponse[RoutingLearnRead])
def learn_routing_pattern(
    payload: RoutingLearnRequest,
    workspace_id: str = Path(..., min_length=1),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[RoutingLearnRead]:
    """Record who handled a keyword or system."""

    try:
        result = learn_routing(
            _history_store(workspace_id, session_factory, settings),
            payload.key,
            payload.assignee_id,
            assignee_name=payload.assignee_name,
            reason=payload.reason,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(data=RoutingLearnRead.model_validate(result))


@router.post("/routing/{pattern_id}/confirm", response_model=ApiResponse[RoutingPatternRead])
def confirm_routing(
    workspace_id: str = Path(..., min_length=1),
    pattern_id: str = Path(..., min_length=1),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[RoutingPatternRead]:
    """Confirm a routing suggestion was right."""

    pattern = confirm_routing_pattern(_history_store(workspace_id, session_factory, settings), pattern_id)
    if pattern is None:
        raise HTTPException(status_code=404, detail="Routing pattern not found")
    return ApiResponse(data=RoutingPatternRead.model_validate(pattern))


@router.post("/routing/{pattern_id}/use", response_model=ApiResponse[RoutingPatternRead])
def use_routing(
    workspace_id: str = Path(..., min_length=1),
    pattern_id: str = Path(..., min_length=1),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[RoutingPatternRead]:
    """Record that a routing suggestion was acted on."""

    pattern = record_routing_pattern_usage(_history_store(workspace_id, session_factory, settings), pattern_id)
    if pattern is None:
        raise HTTPException(status_code=404, detail="Routing pattern not found")
    return ApiResponse(data=RoutingPatternRead.model_validate(pattern))


@router.post("/seed", response_model=ApiResponse[BrainSeedRead])
def seed_brain(
    payload: BrainSeedRequest,
    workspace_id: str = Path(..., min_length=1),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[BrainSeedRead]:
    """Seed a workspace's company brain during onboarding."""

    result = seed_company_brain(
        SqlEntityStore(session_factory, workspace_id, max_candidates=settings.max_store_candidates),
        _history_store(workspace_id, session_factory, settings),
        payload,
    )
    return ApiResponse(data=BrainSeedRead.model_validate(result))
