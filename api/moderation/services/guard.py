"""Role-gated authorization for status transitions.

Every write path (admin moderation, employer pipeline, applicant withdrawal,
owner resubmission) asks ``authorize`` and nothing else. The function is total:
it returns a ``Decision`` for every input and never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from moderation.services.entities import (
    EMPLOYER_MANAGED_APPLICATION_STATUSES,
    ApplicationSnapshot,
    ApplicationStatus,
    CompanySnapshot,
    CompanyStatus,
    EntityKind,
    JobSnapshot,
    JobStatus,
    Snapshot,
    UserSnapshot,
    parse_status,
)
from moderation.services.roles import (
    PRIVILEGED_ACCOUNT_ROLES,
    ActorCapabilities,
    Role,
    is_admin_like,
    parse_role,
)
from moderation.services.transition_table import TERMINAL_STATUSES

MODERATOR_CANNOT_SUSPEND_JOBS = "Moderators cannot suspend jobs."
NO_JOB_PERMISSION = "You do not have permission to change job statuses."
NO_COMPANY_PERMISSION = "You do not have permission to change company statuses."
NO_USER_PERMISSION = "You do not have permission to change user statuses."
CANNOT_TARGET_SELF = "You cannot change your own account status."
ADMIN_CANNOT_TARGET_PRIVILEGED = "Admins cannot change the status of other admins or super admins."
COMPANY_RESTRICTED_APPLICATIONS = (
    "Cannot update application status as your company account is currently restricted."
)
COMPANY_RESTRICTED_RESUBMIT = "Cannot resubmit jobs while your company account is restricted."
COMPANY_RESTRICTED_PROFILE = "Cannot resubmit a company profile while the company is restricted."
NOT_OWNING_EMPLOYER = "Only the owning employer can manage this application."
ONLY_APPLICANT_CAN_WITHDRAW = "Only the applicant can withdraw this application."
WITHDRAW_ONLY_FROM_APPLIED = "Applications can only be withdrawn while in 'Applied' status."
ACCOUNT_SUSPENDED = "Your account is currently suspended."
ACCOUNT_DELETED = "This account has been deleted."
ONLY_SUPER_ADMIN_LEGAL = "Only Super Admins can update legal documents."

_FULL_JOB_MODERATORS = frozenset(
    {Role.ADMIN, Role.SUPER_ADMIN, Role.COMPLIANCE_OFFICER, Role.SYSTEM_MONITOR}
)
# Open product question: these roles may only revert a job to pending.
_JOB_PENDING_ONLY_ROLES = frozenset({Role.SUPPORT_AGENT, Role.DATA_ANALYST})
_NO_COMPANY_WRITE_ROLES = frozenset({Role.SUPPORT_AGENT, Role.DATA_ANALYST})


@dataclass(slots=True, frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> Decision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> Decision:
        return cls(allowed=False, reason=reason)


@dataclass(slots=True, frozen=True)
class SubjectContext:
    """Attributes of the entity being transitioned that ownership rules need."""

    uid: str | None = None
    role: str | None = None
    owner_id: str | None = None
    company_id: str | None = None
    applicant_id: str | None = None


def subject_from_snapshot(snapshot: Snapshot) -> SubjectContext:
    if isinstance(snapshot, JobSnapshot):
        return SubjectContext(owner_id=snapshot.posted_by_id, company_id=snapshot.company_id)
    if isinstance(snapshot, CompanySnapshot):
        return SubjectContext(company_id=snapshot.id)
    if isinstance(snapshot, UserSnapshot):
        return SubjectContext(uid=snapshot.uid, role=snapshot.role)
    if isinstance(snapshot, ApplicationSnapshot):
        return SubjectContext(company_id=snapshot.company_id, applicant_id=snapshot.applicant_id)
    return SubjectContext()


def authorize(
    actor_role: Role | str,
    capabilities: ActorCapabilities,
    kind: EntityKind,
    from_status: str | Enum,
    to_status: str | Enum,
    *,
    subject: SubjectContext | None = None,
) -> Decision:
    role = parse_role(actor_role)
    subject = subject or SubjectContext()
    if capabilities.account_suspended:
        return Decision.deny(restricted_account_reason(capabilities))
    try:
        current = parse_status(kind, from_status)
        target = parse_status(kind, to_status)
    except ValueError as exc:
        return Decision.deny(str(exc))

    if kind is EntityKind.JOB:
        return _authorize_job(role, capabilities, target, subject)
    if kind is EntityKind.COMPANY:
        return _authorize_company(role, capabilities, target, subject)
    if kind is EntityKind.USER:
        return _authorize_user(role, capabilities, subject)
    return _authorize_application(role, capabilities, current, target, subject)


def restricted_account_reason(capabilities: ActorCapabilities) -> str:
    if capabilities.account_status == "deleted":
        return ACCOUNT_DELETED
    return ACCOUNT_SUSPENDED


def authorize_legal_edit(actor_role: Role | str, capabilities: ActorCapabilities | None = None) -> Decision:
    if capabilities is not None and capabilities.account_suspended:
        return Decision.deny(restricted_account_reason(capabilities))
    if parse_role(actor_role) is Role.SUPER_ADMIN:
        return Decision.allow()
    return Decision.deny(ONLY_SUPER_ADMIN_LEGAL)


def _authorize_job(
    role: Role,
    capabilities: ActorCapabilities,
    target: Enum,
    subject: SubjectContext,
) -> Decision:
    if role in _FULL_JOB_MODERATORS:
        return Decision.allow()
    if role is Role.MODERATOR:
        if target is JobStatus.SUSPENDED:
            return Decision.deny(MODERATOR_CANNOT_SUSPEND_JOBS)
        return Decision.allow()
    if role in _JOB_PENDING_ONLY_ROLES:
        if target is JobStatus.PENDING:
            return Decision.allow()
        return Decision.deny(NO_JOB_PERMISSION)
    if role is Role.EMPLOYER and target is JobStatus.PENDING and _owns_job(capabilities, subject):
        if capabilities.company_restricted:
            return Decision.deny(COMPANY_RESTRICTED_RESUBMIT)
        return Decision.allow()
    return Decision.deny(NO_JOB_PERMISSION)


def _owns_job(capabilities: ActorCapabilities, subject: SubjectContext) -> bool:
    if capabilities.uid and capabilities.uid == subject.owner_id:
        return True
    return bool(capabilities.company_id) and capabilities.company_id == subject.company_id


def _authorize_company(
    role: Role,
    capabilities: ActorCapabilities,
    target: Enum,
    subject: SubjectContext,
) -> Decision:
    if role in _NO_COMPANY_WRITE_ROLES:
        return Decision.deny(NO_COMPANY_PERMISSION)
    if is_admin_like(role):
        return Decision.allow()
    if (
        role is Role.EMPLOYER
        and target is CompanyStatus.PENDING
        and capabilities.is_company_admin
        and capabilities.company_id is not None
        and capabilities.company_id == subject.company_id
    ):
        if capabilities.company_restricted:
            return Decision.deny(COMPANY_RESTRICTED_PROFILE)
        return Decision.allow()
    return Decision.deny(NO_COMPANY_PERMISSION)


def _authorize_user(role: Role, capabilities: ActorCapabilities, subject: SubjectContext) -> Decision:
    if capabilities.uid is not None and capabilities.uid == subject.uid:
        return Decision.deny(CANNOT_TARGET_SELF)
    if role is Role.SUPER_ADMIN:
        return Decision.allow()
    if role is Role.ADMIN:
        if parse_role(subject.role) in PRIVILEGED_ACCOUNT_ROLES:
            return Decision.deny(ADMIN_CANNOT_TARGET_PRIVILEGED)
        return Decision.allow()
    return Decision.deny(NO_USER_PERMISSION)


def _authorize_application(
    role: Role,
    capabilities: ActorCapabilities,
    current: Enum,
    target: Enum,
    subject: SubjectContext,
) -> Decision:
    if current in TERMINAL_STATUSES[EntityKind.APPLICATION]:
        return Decision.deny(f"Application status '{current.value}' is final and cannot be changed.")

    if target is ApplicationStatus.WITHDRAWN_BY_APPLICANT:
        if capabilities.uid is None or capabilities.uid != subject.applicant_id:
            return Decision.deny(ONLY_APPLICANT_CAN_WITHDRAW)
        if current is not ApplicationStatus.APPLIED:
            return Decision.deny(WITHDRAW_ONLY_FROM_APPLIED)
        return Decision.allow()

    if role is not Role.EMPLOYER:
        return Decision.deny(NOT_OWNING_EMPLOYER)
    if capabilities.company_id is None or capabilities.company_id != subject.company_id:
        return Decision.deny(NOT_OWNING_EMPLOYER)
    if capabilities.company_restricted:
        return Decision.deny(COMPANY_RESTRICTED_APPLICATIONS)
    if target not in EMPLOYER_MANAGED_APPLICATION_STATUSES:
        return Decision.deny(NOT_OWNING_EMPLOYER)
    return Decision.allow()
