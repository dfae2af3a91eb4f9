from datetime import datetime, timezone

from moderation.services.cascades import (
    APPROVED_JOBS,
    FLAG_ACCOUNT_RESTRICTED,
    FLAG_RECRUITER_ACCESS_LIMITED,
    PENDING_COMPANIES,
    PENDING_JOBS,
    PLATFORM_OWNER,
    CounterDelta,
    application_counter,
    compute_cascades,
    recount,
)
from moderation.services.entities import (
    ApplicationSnapshot,
    ApplicationStatus,
    CompanySnapshot,
    CompanyStatus,
    EntityKind,
    JobSnapshot,
    JobStatus,
    UserSnapshot,
    UserStatus,
    with_changes,
)

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
T1 = datetime(2026, 3, 1, 9, 5, tzinfo=timezone.utc)


def _job(job_id: str, status: JobStatus, posted_by_id: str = "emp-1") -> JobSnapshot:
    return JobSnapshot(id=job_id, status=status, posted_by_id=posted_by_id, company_id="co-1", updated_at=T0)


def _company(status: CompanyStatus) -> CompanySnapshot:
    return CompanySnapshot(
        id="co-1",
        status=status,
        updated_at=T0,
        recruiter_uids=("r2", "r1", "r2"),
        admin_uids=("r1",),
    )


def _application(app_id: str, status: ApplicationStatus, company_id: str = "co-1") -> ApplicationSnapshot:
    return ApplicationSnapshot(
        id=app_id,
        job_id="job-1",
        applicant_id="seeker-1",
        company_id=company_id,
        status=status,
        updated_at=T0,
    )


def test_job_leaving_pending_updates_worklist_and_counters() -> None:
    old = _job("job-1", JobStatus.PENDING)
    new = with_changes(old, status=JobStatus.APPROVED, updated_at=T1)

    cascades = compute_cascades(EntityKind.JOB, old, new)

    assert cascades.removed_from(PENDING_JOBS) == {"job-1"}
    assert CounterDelta("emp-1", PENDING_JOBS, -1) in cascades.counter_deltas
    assert CounterDelta(PLATFORM_OWNER, APPROVED_JOBS, 1) in cascades.counter_deltas
    (intent,) = cascades.notification_intents
    assert intent.kind == "job-approved"
    assert intent.recipient_ids == ("emp-1",)
    assert intent.dedupe_key == f"job-1:approved:{T1.isoformat()}"


def test_job_returning_to_pending_rejoins_worklist() -> None:
    old = _job("job-1", JobStatus.APPROVED)
    new = with_changes(old, status=JobStatus.PENDING, updated_at=T1)

    cascades = compute_cascades(EntityKind.JOB, old, new)

    assert cascades.added_to(PENDING_JOBS) == {"job-1"}
    assert cascades.pending_count_delta == 1
    assert CounterDelta(PLATFORM_OWNER, APPROVED_JOBS, -1) in cascades.counter_deltas
    assert cascades.notification_intents == ()


def test_job_rejection_message_carries_reason() -> None:
    old = _job("job-1", JobStatus.PENDING)
    new = with_changes(old, status=JobStatus.REJECTED, updated_at=T1, moderation_reason="Duplicate posting")

    (intent,) = compute_cascades(EntityKind.JOB, old, new).notification_intents

    assert intent.kind == "job-rejected"
    assert intent.message == "Your job posting has been rejected. Reason: Duplicate posting"


def test_company_suspension_notifies_each_recruiter_once() -> None:
    old = _company(CompanyStatus.APPROVED)
    new = with_changes(old, status=CompanyStatus.SUSPENDED, updated_at=T1)

    cascades = compute_cascades(EntityKind.COMPANY, old, new)

    assert FLAG_RECRUITER_ACCESS_LIMITED in cascades.flags
    (intent,) = cascades.notification_intents
    assert intent.kind == "company-restricted"
    assert intent.recipient_ids == ("r1", "r2")
    assert intent.message == (
        "Associated recruiters' access will be limited based on the new company status ('suspended')."
    )


def test_company_leaving_pending_updates_platform_worklist() -> None:
    old = _company(CompanyStatus.PENDING)
    new = with_changes(old, status=CompanyStatus.APPROVED, updated_at=T1)

    cascades = compute_cascades(EntityKind.COMPANY, old, new)

    assert cascades.removed_from(PENDING_COMPANIES) == {"co-1"}
    assert CounterDelta(PLATFORM_OWNER, PENDING_COMPANIES, -1) in cascades.counter_deltas
    assert [intent.kind for intent in cascades.notification_intents] == ["company-approved"]


def test_user_suspension_only_sets_flag() -> None:
    old = UserSnapshot(uid="u-1", role="employer", status=UserStatus.ACTIVE, updated_at=T0)
    new = with_changes(old, status=UserStatus.SUSPENDED, updated_at=T1)

    cascades = compute_cascades(EntityKind.USER, old, new)

    assert cascades.flags == frozenset({FLAG_ACCOUNT_RESTRICTED})
    assert cascades.notification_intents == ()
    assert cascades.counter_deltas == ()


def test_application_terminal_change_notifies_applicant_only() -> None:
    old = _application("app-1", ApplicationStatus.OFFER_MADE)
    new = with_changes(old, status=ApplicationStatus.HIRED, updated_at=T1)

    cascades = compute_cascades(EntityKind.APPLICATION, old, new)

    (intent,) = cascades.notification_intents
    assert intent.kind == "application-status-update"
    assert intent.recipient_ids == ("seeker-1",)
    assert intent.status == "Hired"
    assert set(cascades.counter_deltas) == {
        CounterDelta("co-1", application_counter(ApplicationStatus.OFFER_MADE), -1),
        CounterDelta("co-1", application_counter(ApplicationStatus.HIRED), 1),
    }


def test_unchanged_status_yields_empty_cascades() -> None:
    old = _company(CompanyStatus.SUSPENDED)
    new = with_changes(old, updated_at=T1, moderation_reason="Still under review")
    assert compute_cascades(EntityKind.COMPANY, old, new).is_empty


def test_cascades_are_deterministic() -> None:
    old = _application("app-1", ApplicationStatus.APPLIED)
    new = with_changes(old, status=ApplicationStatus.REVIEWED, updated_at=T1)
    assert compute_cascades(EntityKind.APPLICATION, old, new) == compute_cascades(EntityKind.APPLICATION, old, new)


def test_recount_rebuilds_counters_and_worklists() -> None:
    state = recount(
        jobs=[
            _job("job-1", JobStatus.PENDING),
            _job("job-2", JobStatus.PENDING, posted_by_id="emp-2"),
            _job("job-3", JobStatus.APPROVED),
            _job("job-4", JobStatus.SUSPENDED),
        ],
        companies=[_company(CompanyStatus.PENDING)],
        applications=[
            _application("app-1", ApplicationStatus.APPLIED),
            _application("app-2", ApplicationStatus.APPLIED),
            _application("app-3", ApplicationStatus.HIRED, company_id="co-2"),
        ],
    )

    assert state.worklists[PENDING_JOBS] == {"job-1", "job-2"}
    assert state.worklists[PENDING_COMPANIES] == {"co-1"}
    assert state.counters[("emp-1", PENDING_JOBS)] == 1
    assert state.counters[("emp-2", PENDING_JOBS)] == 1
    assert state.counters[(PLATFORM_OWNER, APPROVED_JOBS)] == 1
    assert state.counters[(PLATFORM_OWNER, PENDING_COMPANIES)] == 1
    assert state.counters[("co-1", "applications:Applied")] == 2
    assert state.counters[("co-2", "applications:Hired")] == 1
