from fastapi import APIRouter, Depends

from moderation.api.deps import get_transition_service, resolve_actor, run_transition
from moderation.core.security import get_human_principal
from moderation.schemas.transitions import TransitionOut, TransitionRequest
from moderation.services.entities import EntityKind

router = APIRouter()


@router.post("", response_model=TransitionOut)
async def request_transition(
    payload: TransitionRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_transition_service),
) -> TransitionOut:
    actor = await resolve_actor(service, principal)
    return await run_transition(
        lambda: service.request_transition(
            EntityKind(payload.entity_kind),
            payload.entity_id,
            actor,
            payload.to_status,
            payload.reason,
            employer_notes=payload.employer_notes,
        )
    )
