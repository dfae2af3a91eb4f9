from collections.abc import Awaitable, Callable

from fastapi import Depends, HTTPException, status

from moderation.core.auth import Principal
from moderation.core.config import Settings, get_settings
from moderation.schemas.transitions import AuditEntryOut, NotificationIntentOut, TransitionOut
from moderation.services.engine import TransitionResult
from moderation.services.entities import CompanySnapshot, JobSnapshot
from moderation.services.errors import (
    EntityNotFoundError,
    InvalidTransitionError,
    PermissionDeniedError,
    StaleSnapshotError,
)
from moderation.services.repository import (
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from moderation.services.roles import Actor
from moderation.services.transitions import TransitionService


def get_transition_service(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
) -> TransitionService:
    return TransitionService(repository, stale_retry_attempts=settings.stale_retry_attempts)


async def resolve_actor(service: TransitionService, principal: Principal) -> Actor:
    try:
        return await service.resolve_actor(principal)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


async def run_transition(operation: Callable[[], Awaitable[TransitionResult]]) -> TransitionOut:
    """Await a service call and translate the error taxonomy into HTTP responses."""
    try:
        result = await operation()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except EntityNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.reason) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StaleSnapshotError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{exc}; reload and try again",
        ) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return transition_out(result)


def transition_out(result: TransitionResult) -> TransitionOut:
    snapshot = result.snapshot
    moderation_reason = None
    if isinstance(snapshot, (JobSnapshot, CompanySnapshot)):
        moderation_reason = snapshot.moderation_reason

    audit_entry = None
    if result.audit_entry is not None:
        entry = result.audit_entry
        audit_entry = AuditEntryOut(
            entity_kind=entry.entity_kind.value,
            entity_id=entry.entity_id,
            from_status=entry.from_status,
            to_status=entry.to_status,
            reason=entry.reason,
            actor_role=entry.actor_role,
            actor_id=entry.actor_id,
            timestamp=entry.timestamp,
        )

    return TransitionOut(
        entity_kind=result.kind.value,
        entity_id=result.entity_id,
        from_status=result.previous.status.value,
        to_status=snapshot.status.value,
        affirmed=result.affirmed,
        updated_at=snapshot.updated_at,
        moderation_reason=moderation_reason,
        flags=sorted(result.cascades.flags),
        notification_intents=[
            NotificationIntentOut(**intent.to_payload()) for intent in result.notification_intents
        ],
        audit_entry=audit_entry,
    )
