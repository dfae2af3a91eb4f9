from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from moderation.services.entities import (
    ApplicationSnapshot,
    ApplicationStatus,
    CompanySnapshot,
    CompanyStatus,
    EntityKind,
    JobSnapshot,
    JobStatus,
    Snapshot,
    UserSnapshot,
    UserStatus,
)

PENDING_JOBS = "pending_jobs"
PENDING_COMPANIES = "pending_companies"
APPROVED_JOBS = "approved_jobs"
PLATFORM_OWNER = "platform"

FLAG_RECRUITER_ACCESS_LIMITED = "recruiter-access-limited"
FLAG_ACCOUNT_RESTRICTED = "account-restricted"

_COMPANY_RESTRICTED_STATUSES = frozenset({CompanyStatus.SUSPENDED, CompanyStatus.DELETED})
_USER_RESTRICTED_STATUSES = frozenset({UserStatus.SUSPENDED, UserStatus.DELETED})


def application_counter(status: ApplicationStatus) -> str:
    return f"applications:{status.value}"


@dataclass(slots=True, frozen=True)
class WorklistChange:
    worklist: str
    entity_id: str
    member: bool


@dataclass(slots=True, frozen=True)
class CounterDelta:
    owner_id: str
    counter: str
    delta: int


@dataclass(slots=True, frozen=True)
class NotificationIntent:
    kind: str
    entity_kind: EntityKind
    entity_id: str
    recipient_ids: tuple[str, ...]
    status: str
    message: str
    # Carries the commit timestamp; two intents for the same transition are equal without it.
    dedupe_key: str = field(compare=False)

    def to_payload(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "entity_kind": self.entity_kind.value,
            "entity_id": self.entity_id,
            "recipient_ids": list(self.recipient_ids),
            "status": self.status,
            "message": self.message,
            "dedupe_key": self.dedupe_key,
        }


@dataclass(slots=True, frozen=True)
class CascadeSet:
    worklist_changes: tuple[WorklistChange, ...] = ()
    counter_deltas: tuple[CounterDelta, ...] = ()
    notification_intents: tuple[NotificationIntent, ...] = ()
    flags: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (self.worklist_changes or self.counter_deltas or self.notification_intents or self.flags)

    @property
    def pending_count_delta(self) -> int:
        return sum(delta.delta for delta in self.counter_deltas if delta.counter == PENDING_JOBS)

    def removed_from(self, worklist: str) -> set[str]:
        return {
            change.entity_id
            for change in self.worklist_changes
            if change.worklist == worklist and not change.member
        }

    def added_to(self, worklist: str) -> set[str]:
        return {
            change.entity_id
            for change in self.worklist_changes
            if change.worklist == worklist and change.member
        }


@dataclass(slots=True)
class DerivedState:
    counters: dict[tuple[str, str], int] = field(default_factory=dict)
    worklists: dict[str, set[str]] = field(default_factory=dict)


def dedupe_key(snapshot: Snapshot) -> str:
    return f"{snapshot.id}:{snapshot.status.value}:{snapshot.updated_at.isoformat()}"


def compute_cascades(kind: EntityKind, old: Snapshot, new: Snapshot) -> CascadeSet:
    """Derive worklist, counter and notification effects of ``old -> new``.

    Pure: the same pair always yields an equal ``CascadeSet``, so a retried
    commit cannot produce different intents for the same transition.
    """
    if old.status == new.status:
        return CascadeSet()

    if kind is EntityKind.JOB:
        return _job_cascades(old, new)  # type: ignore[arg-type]
    if kind is EntityKind.COMPANY:
        return _company_cascades(old, new)  # type: ignore[arg-type]
    if kind is EntityKind.USER:
        return _user_cascades(old, new)  # type: ignore[arg-type]
    return _application_cascades(old, new)  # type: ignore[arg-type]


def _membership(
    worklist: str,
    entity_id: str,
    owner_id: str,
    counter: str,
    *,
    was_member: bool,
    is_member: bool,
) -> tuple[list[WorklistChange], list[CounterDelta]]:
    if was_member == is_member:
        return [], []
    delta = 1 if is_member else -1
    return [WorklistChange(worklist, entity_id, is_member)], [CounterDelta(owner_id, counter, delta)]


def _job_cascades(old: JobSnapshot, new: JobSnapshot) -> CascadeSet:
    worklist_changes, counter_deltas = _membership(
        PENDING_JOBS,
        new.id,
        new.posted_by_id,
        PENDING_JOBS,
        was_member=old.status is JobStatus.PENDING,
        is_member=new.status is JobStatus.PENDING,
    )

    was_approved = old.status is JobStatus.APPROVED
    is_approved = new.status is JobStatus.APPROVED
    if was_approved != is_approved:
        counter_deltas.append(CounterDelta(PLATFORM_OWNER, APPROVED_JOBS, 1 if is_approved else -1))

    intents: list[NotificationIntent] = []
    if new.status in {JobStatus.APPROVED, JobStatus.REJECTED}:
        verb = new.status.value
        message = f"Your job posting has been {verb}."
        if new.moderation_reason:
            message = f"{message} Reason: {new.moderation_reason}"
        intents.append(
            NotificationIntent(
                kind=f"job-{verb}",
                entity_kind=EntityKind.JOB,
                entity_id=new.id,
                recipient_ids=(new.posted_by_id,),
                status=new.status.value,
                message=message,
                dedupe_key=dedupe_key(new),
            )
        )

    return CascadeSet(
        worklist_changes=tuple(worklist_changes),
        counter_deltas=tuple(counter_deltas),
        notification_intents=tuple(intents),
    )


def _company_cascades(old: CompanySnapshot, new: CompanySnapshot) -> CascadeSet:
    worklist_changes, counter_deltas = _membership(
        PENDING_COMPANIES,
        new.id,
        PLATFORM_OWNER,
        PENDING_COMPANIES,
        was_member=old.status is CompanyStatus.PENDING,
        is_member=new.status is CompanyStatus.PENDING,
    )

    recipients = tuple(sorted(set(new.recruiter_uids)))
    intents: list[NotificationIntent] = []
    flags: set[str] = set()

    if new.status in _COMPANY_RESTRICTED_STATUSES:
        flags.add(FLAG_RECRUITER_ACCESS_LIMITED)
        intents.append(
            NotificationIntent(
                kind="company-restricted",
                entity_kind=EntityKind.COMPANY,
                entity_id=new.id,
                recipient_ids=recipients,
                status=new.status.value,
                message=(
                    "Associated recruiters' access will be limited based on the new company "
                    f"status ('{new.status.value}')."
                ),
                dedupe_key=dedupe_key(new),
            )
        )
    elif new.status in {CompanyStatus.APPROVED, CompanyStatus.REJECTED}:
        verb = new.status.value
        intents.append(
            NotificationIntent(
                kind=f"company-{verb}",
                entity_kind=EntityKind.COMPANY,
                entity_id=new.id,
                recipient_ids=recipients,
                status=verb,
                message=f"Your company profile has been {verb}.",
                dedupe_key=dedupe_key(new),
            )
        )

    return CascadeSet(
        worklist_changes=tuple(worklist_changes),
        counter_deltas=tuple(counter_deltas),
        notification_intents=tuple(intents),
        flags=frozenset(flags),
    )


def _user_cascades(old: UserSnapshot, new: UserSnapshot) -> CascadeSet:
    # Restriction is enforced by readers checking status; nothing to fan out here.
    if new.status in _USER_RESTRICTED_STATUSES:
        return CascadeSet(flags=frozenset({FLAG_ACCOUNT_RESTRICTED}))
    return CascadeSet()


def _application_cascades(old: ApplicationSnapshot, new: ApplicationSnapshot) -> CascadeSet:
    counter_deltas = (
        CounterDelta(new.company_id, application_counter(old.status), -1),
        CounterDelta(new.company_id, application_counter(new.status), 1),
    )
    intent = NotificationIntent(
        kind="application-status-update",
        entity_kind=EntityKind.APPLICATION,
        entity_id=new.id,
        recipient_ids=(new.applicant_id,),
        status=new.status.value,
        message=f"Your application status changed to '{new.status.value}'.",
        dedupe_key=dedupe_key(new),
    )
    return CascadeSet(counter_deltas=counter_deltas, notification_intents=(intent,))


def recount(
    *,
    jobs: Iterable[JobSnapshot],
    companies: Iterable[CompanySnapshot],
    applications: Iterable[ApplicationSnapshot],
) -> DerivedState:
    """Rebuild every derived counter and worklist from entity statuses."""
    counters: Counter[tuple[str, str]] = Counter()
    worklists: dict[str, set[str]] = {PENDING_JOBS: set(), PENDING_COMPANIES: set()}

    for job in jobs:
        if job.status is JobStatus.PENDING:
            worklists[PENDING_JOBS].add(job.id)
            counters[(job.posted_by_id, PENDING_JOBS)] += 1
        elif job.status is JobStatus.APPROVED:
            counters[(PLATFORM_OWNER, APPROVED_JOBS)] += 1

    for company in companies:
        if company.status is CompanyStatus.PENDING:
            worklists[PENDING_COMPANIES].add(company.id)
            counters[(PLATFORM_OWNER, PENDING_COMPANIES)] += 1

    for application in applications:
        counters[(application.company_id, application_counter(application.status))] += 1

    return DerivedState(counters=dict(counters), worklists=worklists)
