from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Union


class EntityKind(str, Enum):
    JOB = "job"
    COMPANY = "company"
    USER = "user"
    APPLICATION = "application"


class JobStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class CompanyStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"
    ACTIVE = "active"
    DELETED = "deleted"


class UserStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class ApplicationStatus(str, Enum):
    APPLIED = "Applied"
    REVIEWED = "Reviewed"
    INTERVIEWING = "Interviewing"
    OFFER_MADE = "Offer Made"
    HIRED = "Hired"
    REJECTED_BY_COMPANY = "Rejected By Company"
    WITHDRAWN_BY_APPLICANT = "Withdrawn by Applicant"


EMPLOYER_MANAGED_APPLICATION_STATUSES: tuple[ApplicationStatus, ...] = (
    ApplicationStatus.APPLIED,
    ApplicationStatus.REVIEWED,
    ApplicationStatus.INTERVIEWING,
    ApplicationStatus.OFFER_MADE,
    ApplicationStatus.HIRED,
    ApplicationStatus.REJECTED_BY_COMPANY,
)

STATUS_ENUMS: dict[EntityKind, type[Enum]] = {
    EntityKind.JOB: JobStatus,
    EntityKind.COMPANY: CompanyStatus,
    EntityKind.USER: UserStatus,
    EntityKind.APPLICATION: ApplicationStatus,
}

Status = Union[JobStatus, CompanyStatus, UserStatus, ApplicationStatus]


def parse_status(kind: EntityKind, value: str | Enum) -> Status:
    """Coerce a raw status into the closed enumeration for ``kind``.

    Raises ``ValueError`` for anything outside the entity's status domain.
    """
    enum_cls = STATUS_ENUMS[kind]
    if isinstance(value, enum_cls):
        return value  # type: ignore[return-value]
    raw = value.value if isinstance(value, Enum) else value
    try:
        return enum_cls(raw)  # type: ignore[return-value]
    except ValueError as exc:
        raise ValueError(f"unknown {kind.value} status: {raw!r}") from exc


@dataclass(slots=True, frozen=True)
class JobSnapshot:
    id: str
    status: JobStatus
    posted_by_id: str
    company_id: str
    updated_at: datetime
    moderation_reason: str | None = None


@dataclass(slots=True, frozen=True)
class CompanySnapshot:
    id: str
    status: CompanyStatus
    updated_at: datetime
    recruiter_uids: tuple[str, ...] = ()
    admin_uids: tuple[str, ...] = ()
    moderation_reason: str | None = None


@dataclass(slots=True, frozen=True)
class UserSnapshot:
    uid: str
    role: str
    status: UserStatus
    updated_at: datetime
    company_id: str | None = None
    is_company_admin: bool = False

    @property
    def id(self) -> str:
        return self.uid


@dataclass(slots=True, frozen=True)
class ApplicationSnapshot:
    id: str
    job_id: str
    applicant_id: str
    company_id: str
    status: ApplicationStatus
    updated_at: datetime
    employer_notes: str | None = None


Snapshot = Union[JobSnapshot, CompanySnapshot, UserSnapshot, ApplicationSnapshot]

SNAPSHOT_TYPES: dict[EntityKind, type] = {
    EntityKind.JOB: JobSnapshot,
    EntityKind.COMPANY: CompanySnapshot,
    EntityKind.USER: UserSnapshot,
    EntityKind.APPLICATION: ApplicationSnapshot,
}


def kind_of(snapshot: Snapshot) -> EntityKind:
    for kind, snapshot_type in SNAPSHOT_TYPES.items():
        if isinstance(snapshot, snapshot_type):
            return kind
    raise TypeError(f"unsupported snapshot type: {type(snapshot).__name__}")


def with_changes(snapshot: Snapshot, **changes: object) -> Snapshot:
    return replace(snapshot, **changes)  # type: ignore[arg-type]
