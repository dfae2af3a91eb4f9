import logging

from fastapi import APIRouter, Depends, HTTPException, status

from moderation.core.auth import PrincipalType
from moderation.api.deps import get_transition_service, resolve_actor
from moderation.core.security import get_any_principal, get_human_principal
from moderation.schemas.admin import (
    DerivedRebuildOut,
    LegalDocumentId,
    LegalDocumentOut,
    LegalDocumentUpdateRequest,
)
from moderation.services.guard import authorize_legal_edit, restricted_account_reason
from moderation.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from moderation.services.roles import PRIVILEGED_ACCOUNT_ROLES

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/legal/{doc_id}", response_model=LegalDocumentOut)
async def get_legal_document(
    doc_id: LegalDocumentId,
    repository=Depends(get_repository),
) -> LegalDocumentOut:
    try:
        row = await repository.get_legal_document(doc_id=doc_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return LegalDocumentOut(**row)


@router.put("/legal/{doc_id}", response_model=LegalDocumentOut)
async def put_legal_document(
    doc_id: LegalDocumentId,
    payload: LegalDocumentUpdateRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    service=Depends(get_transition_service),
) -> LegalDocumentOut:
    actor = await resolve_actor(service, principal)
    decision = authorize_legal_edit(actor.role, actor.capabilities)
    if not decision.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=decision.reason)

    try:
        row = await repository.save_legal_document(
            doc_id=doc_id,
            content=payload.content,
            actor_user_id=principal.actor_id,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return LegalDocumentOut(**row)


@router.post("/derived/rebuild", response_model=DerivedRebuildOut)
async def rebuild_derived_state(
    principal=Depends(get_any_principal),
    repository=Depends(get_repository),
    service=Depends(get_transition_service),
) -> DerivedRebuildOut:
    if principal.principal_type == PrincipalType.MACHINE:
        try:
            principal.require_scopes({"derived:rebuild"})
        except PermissionError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    else:
        actor = await resolve_actor(service, principal)
        if actor.capabilities.account_suspended:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=restricted_account_reason(actor.capabilities),
            )
        if actor.role not in PRIVILEGED_ACCOUNT_ROLES:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="only admins can rebuild derived state",
            )

    try:
        summary = await repository.rebuild_derived_state()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info(
        "derived state rebuilt counters=%s worklist_entries=%s by=%s",
        summary["counters"],
        summary["worklist_entries"],
        principal.subject,
    )
    return DerivedRebuildOut(**summary)
