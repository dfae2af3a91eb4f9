from __future__ import annotations

from enum import Enum

from moderation.services.entities import (
    EMPLOYER_MANAGED_APPLICATION_STATUSES,
    STATUS_ENUMS,
    ApplicationStatus,
    CompanyStatus,
    EntityKind,
    JobStatus,
    Status,
    UserStatus,
    parse_status,
)

_APPLICATION_INTERMEDIATE = (
    ApplicationStatus.REVIEWED,
    ApplicationStatus.INTERVIEWING,
    ApplicationStatus.OFFER_MADE,
)

TERMINAL_STATUSES: dict[EntityKind, frozenset[Enum]] = {
    EntityKind.JOB: frozenset(),
    EntityKind.COMPANY: frozenset({CompanyStatus.DELETED}),
    EntityKind.USER: frozenset({UserStatus.DELETED}),
    EntityKind.APPLICATION: frozenset(
        {
            ApplicationStatus.HIRED,
            ApplicationStatus.REJECTED_BY_COMPANY,
            ApplicationStatus.WITHDRAWN_BY_APPLICANT,
        }
    ),
}

# Kinds where from == to is an "affirm" (re-approve, re-suspend with a new reason).
SELF_TRANSITION_KINDS = frozenset({EntityKind.JOB, EntityKind.COMPANY})

ALLOWED_TRANSITIONS: dict[EntityKind, dict[Enum, frozenset[Enum]]] = {
    EntityKind.JOB: {status: frozenset(JobStatus) - {status} for status in JobStatus},
    EntityKind.COMPANY: {
        CompanyStatus.PENDING: frozenset(
            {CompanyStatus.APPROVED, CompanyStatus.REJECTED, CompanyStatus.DELETED}
        ),
        CompanyStatus.APPROVED: frozenset(
            {
                CompanyStatus.PENDING,
                CompanyStatus.REJECTED,
                CompanyStatus.SUSPENDED,
                CompanyStatus.ACTIVE,
                CompanyStatus.DELETED,
            }
        ),
        CompanyStatus.ACTIVE: frozenset(
            {
                CompanyStatus.PENDING,
                CompanyStatus.APPROVED,
                CompanyStatus.SUSPENDED,
                CompanyStatus.DELETED,
            }
        ),
        CompanyStatus.REJECTED: frozenset(
            {CompanyStatus.PENDING, CompanyStatus.APPROVED, CompanyStatus.DELETED}
        ),
        CompanyStatus.SUSPENDED: frozenset(
            {CompanyStatus.APPROVED, CompanyStatus.ACTIVE, CompanyStatus.DELETED}
        ),
        CompanyStatus.DELETED: frozenset(),
    },
    EntityKind.USER: {
        UserStatus.ACTIVE: frozenset({UserStatus.SUSPENDED, UserStatus.DELETED}),
        UserStatus.SUSPENDED: frozenset({UserStatus.ACTIVE, UserStatus.DELETED}),
        UserStatus.DELETED: frozenset(),
    },
    EntityKind.APPLICATION: {
        ApplicationStatus.APPLIED: frozenset(
            (set(EMPLOYER_MANAGED_APPLICATION_STATUSES) - {ApplicationStatus.APPLIED})
            | {ApplicationStatus.WITHDRAWN_BY_APPLICANT}
        ),
        **{
            status: frozenset(set(EMPLOYER_MANAGED_APPLICATION_STATUSES) - {status})
            for status in _APPLICATION_INTERMEDIATE
        },
        ApplicationStatus.HIRED: frozenset(),
        ApplicationStatus.REJECTED_BY_COMPANY: frozenset(),
        ApplicationStatus.WITHDRAWN_BY_APPLICANT: frozenset(),
    },
}


def is_terminal(kind: EntityKind, status: str | Enum) -> bool:
    return parse_status(kind, status) in TERMINAL_STATUSES[kind]


def is_legal_transition(kind: EntityKind, from_status: str | Enum, to_status: str | Enum) -> bool:
    try:
        current = parse_status(kind, from_status)
        target = parse_status(kind, to_status)
    except ValueError:
        return False

    if current in TERMINAL_STATUSES[kind]:
        return False
    if current == target:
        return kind in SELF_TRANSITION_KINDS
    return target in ALLOWED_TRANSITIONS[kind].get(current, frozenset())


def list_legal_targets(kind: EntityKind, from_status: str | Enum) -> list[Status]:
    current = parse_status(kind, from_status)
    # Enum declaration order keeps the result stable for UI menus.
    return [
        target
        for target in STATUS_ENUMS[kind]  # type: ignore[attr-defined]
        if is_legal_transition(kind, current, target)
    ]
