from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from moderation.services.entities import (
    ApplicationStatus,
    CompanyStatus,
    EntityKind,
    JobStatus,
    Snapshot,
    UserStatus,
)
from moderation.services.roles import Actor

# Rejections and suspensions always leave a trail, even without an explicit reason.
REASON_REQUIRED_STATUSES: frozenset[Enum] = frozenset(
    {
        JobStatus.REJECTED,
        JobStatus.SUSPENDED,
        CompanyStatus.REJECTED,
        CompanyStatus.SUSPENDED,
        UserStatus.SUSPENDED,
        ApplicationStatus.REJECTED_BY_COMPANY,
    }
)

_ALWAYS_REASONED: dict[EntityKind, frozenset[Enum]] = {
    EntityKind.JOB: frozenset({JobStatus.REJECTED, JobStatus.SUSPENDED}),
    EntityKind.COMPANY: frozenset(
        {CompanyStatus.REJECTED, CompanyStatus.SUSPENDED, CompanyStatus.DELETED}
    ),
}
_REASONED_IF_GIVEN: dict[EntityKind, frozenset[Enum]] = {
    EntityKind.JOB: frozenset({JobStatus.APPROVED}),
    EntityKind.COMPANY: frozenset({CompanyStatus.APPROVED, CompanyStatus.ACTIVE}),
}


@dataclass(slots=True, frozen=True)
class AuditEntry:
    entity_kind: EntityKind
    entity_id: str
    from_status: str
    to_status: str
    reason: str | None
    actor_role: str
    actor_id: str | None
    timestamp: datetime

    def to_payload(self) -> dict[str, object]:
        return {
            "from_status": self.from_status,
            "to_status": self.to_status,
            "reason": self.reason,
            "actor_role": self.actor_role,
        }


def default_reason(status: Enum) -> str:
    value = str(status.value)
    if isinstance(status, ApplicationStatus):
        # Reason-bearing application statuses are set by the hiring employer.
        return f"Status set to '{value}' by employer"
    return f"{value[:1].upper()}{value[1:]} by admin"


def resolve_moderation_reason(kind: EntityKind, status: Enum, reason: str | None) -> str | None:
    """Moderation reason stored on Job/Company documents after a transition.

    Rejections, suspensions and company deletions always carry one (falling
    back to "<Status> by admin"); approvals keep an explicit reason; anything
    else clears it.
    """
    if status in _ALWAYS_REASONED.get(kind, frozenset()):
        return reason or default_reason(status)
    if reason and status in _REASONED_IF_GIVEN.get(kind, frozenset()):
        return reason
    return None


def build_audit_entry(
    kind: EntityKind,
    old: Snapshot,
    new: Snapshot,
    actor: Actor,
    reason: str | None,
) -> AuditEntry | None:
    requires_reason = new.status in REASON_REQUIRED_STATUSES
    if not reason and not requires_reason:
        return None
    return AuditEntry(
        entity_kind=kind,
        entity_id=new.id,
        from_status=old.status.value,
        to_status=new.status.value,
        reason=reason or default_reason(new.status),
        actor_role=actor.role.value,
        actor_id=actor.uid,
        timestamp=new.updated_at,
    )
