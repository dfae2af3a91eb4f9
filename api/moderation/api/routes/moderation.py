from fastapi import APIRouter, Depends, HTTPException, Query, status

from moderation.core.security import get_human_principal
from moderation.schemas.moderation import CountersOut, ModerationEventOut, WorklistEntryOut, WorklistName
from moderation.schemas.transitions import DenialExplanationOut, EntityKindName, LegalTargetsOut
from moderation.services.entities import EntityKind
from moderation.services.repository import RepositoryUnavailableError, get_repository
from moderation.services.roles import Role
from moderation.services.transitions import TransitionService

router = APIRouter()


@router.get("/legal-targets", response_model=LegalTargetsOut)
async def get_legal_targets(
    entity_kind: EntityKindName = Query(...),
    from_status: str = Query(..., min_length=1),
) -> LegalTargetsOut:
    try:
        targets = TransitionService.list_legal_targets(EntityKind(entity_kind), from_status)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return LegalTargetsOut(entity_kind=entity_kind, from_status=from_status, targets=targets)


@router.get("/explain-denial", response_model=DenialExplanationOut)
async def explain_denial(
    entity_kind: EntityKindName = Query(...),
    actor_role: str = Query(..., min_length=1),
    from_status: str = Query(..., min_length=1),
    to_status: str = Query(..., min_length=1),
) -> DenialExplanationOut:
    try:
        role = Role(actor_role)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"unknown role: {actor_role}",
        ) from exc

    reason = TransitionService.explain_denial(EntityKind(entity_kind), role, from_status, to_status)
    return DenialExplanationOut(
        entity_kind=entity_kind,
        actor_role=role.value,
        from_status=from_status,
        to_status=to_status,
        allowed=reason is None,
        reason=reason,
    )


@router.get("/worklists/{worklist}", response_model=list[WorklistEntryOut])
async def list_worklist(
    worklist: WorklistName,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[WorklistEntryOut]:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_worklist(worklist=worklist, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [WorklistEntryOut(**row) for row in rows]


@router.get("/events", response_model=list[ModerationEventOut])
async def list_moderation_events(
    entity_kind: EntityKindName = Query(...),
    entity_id: str = Query(..., min_length=1),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ModerationEventOut]:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_moderation_events(
            kind=EntityKind(entity_kind),
            entity_id=entity_id,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [ModerationEventOut(**row) for row in rows]


@router.get("/counters/{owner_id}", response_model=CountersOut)
async def get_counters(
    owner_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> CountersOut:
    # Owners may read their own counters (pending jobs per employer, application pipeline per company).
    if owner_id not in {principal.subject, principal.company_id}:
        try:
            principal.require_scopes({"moderation:read"})
        except PermissionError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        counters = await repository.get_counters(owner_id=owner_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return CountersOut(owner_id=owner_id, counters=counters)
