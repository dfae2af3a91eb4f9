from fastapi import APIRouter, Depends

from moderation.api.deps import get_transition_service, resolve_actor, run_transition
from moderation.core.security import get_human_principal
from moderation.schemas.transitions import StatusPatchRequest, TransitionOut
from moderation.services.entities import EntityKind

router = APIRouter()


@router.patch("/{uid}/status", response_model=TransitionOut)
async def patch_user_status(
    uid: str,
    payload: StatusPatchRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_transition_service),
) -> TransitionOut:
    actor = await resolve_actor(service, principal)
    return await run_transition(
        lambda: service.request_transition(EntityKind.USER, uid, actor, payload.status, payload.reason)
    )
