from fastapi import APIRouter, Depends

from moderation.api.deps import get_transition_service, resolve_actor, run_transition
from moderation.core.security import get_human_principal
from moderation.schemas.transitions import StatusPatchRequest, TransitionOut
from moderation.services.entities import EntityKind

router = APIRouter()


@router.patch("/{company_id}/status", response_model=TransitionOut)
async def patch_company_status(
    company_id: str,
    payload: StatusPatchRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_transition_service),
) -> TransitionOut:
    actor = await resolve_actor(service, principal)
    return await run_transition(
        lambda: service.request_transition(EntityKind.COMPANY, company_id, actor, payload.status, payload.reason)
    )


@router.post("/{company_id}/resubmit", response_model=TransitionOut)
async def resubmit_company(
    company_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_transition_service),
) -> TransitionOut:
    actor = await resolve_actor(service, principal)
    return await run_transition(lambda: service.resubmit(EntityKind.COMPANY, company_id, actor))
