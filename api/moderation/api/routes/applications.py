from fastapi import APIRouter, Depends

from moderation.api.deps import get_transition_service, resolve_actor, run_transition
from moderation.core.security import get_human_principal
from moderation.schemas.transitions import ApplicationStatusPatchRequest, TransitionOut
from moderation.services.entities import EntityKind

router = APIRouter()


@router.patch("/{application_id}/status", response_model=TransitionOut)
async def patch_application_status(
    application_id: str,
    payload: ApplicationStatusPatchRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_transition_service),
) -> TransitionOut:
    actor = await resolve_actor(service, principal)
    return await run_transition(
        lambda: service.request_transition(
            EntityKind.APPLICATION,
            application_id,
            actor,
            payload.status,
            payload.reason,
            employer_notes=payload.employer_notes,
        )
    )


@router.post("/{application_id}/withdraw", response_model=TransitionOut)
async def withdraw_application(
    application_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_transition_service),
) -> TransitionOut:
    actor = await resolve_actor(service, principal)
    return await run_transition(lambda: service.withdraw_application(application_id, actor))
