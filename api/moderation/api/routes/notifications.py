from fastapi import APIRouter, Depends, HTTPException, Query, status

from moderation.core.security import get_machine_principal
from moderation.schemas.notifications import OutboxEntryOut
from moderation.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    get_repository,
)

router = APIRouter()


@router.get("/outbox", response_model=list[OutboxEntryOut])
async def list_outbox(
    principal=Depends(get_machine_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=500),
) -> list[OutboxEntryOut]:
    try:
        principal.require_scopes({"notifications:relay"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_outbox(limit=limit)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [OutboxEntryOut(**row) for row in rows]


@router.post("/outbox/{entry_id}/ack", response_model=OutboxEntryOut)
async def ack_outbox_entry(
    entry_id: int,
    principal=Depends(get_machine_principal),
    repository=Depends(get_repository),
) -> OutboxEntryOut:
    try:
        principal.require_scopes({"notifications:relay"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.ack_outbox(entry_id=entry_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return OutboxEntryOut(**row)
