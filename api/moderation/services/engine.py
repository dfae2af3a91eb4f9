"""Single-request transition orchestration.

``apply_transition`` validates the edge, consults the guard, and computes the
new snapshot plus its cascades and audit entry. It performs no I/O: committing
the result (compare-and-set on ``updated_at``) and dispatching notifications
belong to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from moderation.services.audit import AuditEntry, build_audit_entry, resolve_moderation_reason
from moderation.services.cascades import CascadeSet, NotificationIntent, compute_cascades
from moderation.services.entities import (
    ApplicationSnapshot,
    CompanySnapshot,
    EntityKind,
    JobSnapshot,
    Snapshot,
    kind_of,
    parse_status,
    with_changes,
)
from moderation.services.errors import InvalidTransitionError, PermissionDeniedError
from moderation.services.guard import authorize, subject_from_snapshot
from moderation.services.roles import Actor
from moderation.services.transition_table import is_legal_transition


@dataclass(slots=True, frozen=True)
class TransitionResult:
    kind: EntityKind
    previous: Snapshot
    snapshot: Snapshot
    cascades: CascadeSet
    audit_entry: AuditEntry | None
    affirmed: bool

    @property
    def entity_id(self) -> str:
        return self.snapshot.id

    @property
    def notification_intents(self) -> tuple[NotificationIntent, ...]:
        return self.cascades.notification_intents

    @property
    def expected_updated_at(self) -> datetime:
        return self.previous.updated_at


def apply_transition(
    kind: EntityKind,
    entity_id: str,
    snapshot: Snapshot,
    actor: Actor,
    to: str | Enum,
    reason: str | None = None,
    *,
    employer_notes: str | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    if kind_of(snapshot) is not kind:
        raise ValueError(f"snapshot is not a {kind.value} snapshot")
    if snapshot.id != entity_id:
        raise ValueError(f"snapshot id {snapshot.id!r} does not match entity id {entity_id!r}")

    current = snapshot.status
    try:
        target = parse_status(kind, to)
    except ValueError as exc:
        raise InvalidTransitionError(kind.value, current.value, str(getattr(to, "value", to))) from exc

    if not is_legal_transition(kind, current, target):
        raise InvalidTransitionError(kind.value, current.value, target.value)

    decision = authorize(
        actor.role,
        actor.capabilities,
        kind,
        current,
        target,
        subject=subject_from_snapshot(snapshot),
    )
    if not decision.allowed:
        raise PermissionDeniedError(decision.reason or "Permission denied.")

    reason = reason.strip() if reason and reason.strip() else None
    updated_at = now or datetime.now(timezone.utc)
    changes: dict[str, object] = {"status": target, "updated_at": updated_at}
    if isinstance(snapshot, (JobSnapshot, CompanySnapshot)):
        changes["moderation_reason"] = resolve_moderation_reason(kind, target, reason)
    if isinstance(snapshot, ApplicationSnapshot) and employer_notes is not None:
        changes["employer_notes"] = employer_notes

    new_snapshot = with_changes(snapshot, **changes)
    return TransitionResult(
        kind=kind,
        previous=snapshot,
        snapshot=new_snapshot,
        cascades=compute_cascades(kind, snapshot, new_snapshot),
        audit_entry=build_audit_entry(kind, snapshot, new_snapshot, actor, reason),
        affirmed=current == target,
    )
