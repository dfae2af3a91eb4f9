from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from moderation.services.cascades import APPROVED_JOBS, PENDING_JOBS, PLATFORM_OWNER
from moderation.services.engine import apply_transition
from moderation.services.entities import EntityKind, JobSnapshot, JobStatus
from moderation.services.errors import EntityNotFoundError, StaleSnapshotError
from moderation.services.repository import RepositoryValidationError
from moderation.services.roles import Actor, ActorCapabilities, Role
from moderation.services.store import InMemoryRepository

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
ADMIN = Actor(Role.ADMIN, ActorCapabilities(uid="admin-1"))


def _seeded_repository() -> InMemoryRepository:
    repository = InMemoryRepository()
    repository.seed(
        JobSnapshot(id="job-1", status=JobStatus.PENDING, posted_by_id="emp-1", company_id="co-1", updated_at=T0),
        JobSnapshot(id="job-2", status=JobStatus.PENDING, posted_by_id="emp-1", company_id="co-1", updated_at=T0),
    )
    asyncio.run(repository.rebuild_derived_state())
    return repository


def test_commit_applies_snapshot_and_derived_state() -> None:
    repository = _seeded_repository()

    async def run() -> None:
        snapshot = await repository.get_snapshot(EntityKind.JOB, "job-1")
        result = apply_transition(EntityKind.JOB, "job-1", snapshot, ADMIN, "approved", now=T0 + timedelta(seconds=1))
        await repository.commit_transition(result)

    asyncio.run(run())

    stored = asyncio.run(repository.get_snapshot(EntityKind.JOB, "job-1"))
    assert stored.status is JobStatus.APPROVED
    counters = asyncio.run(repository.get_counters(owner_id="emp-1"))
    assert counters == {PENDING_JOBS: 1}
    assert asyncio.run(repository.get_counters(owner_id=PLATFORM_OWNER)) == {APPROVED_JOBS: 1}
    worklist = asyncio.run(repository.list_worklist(worklist=PENDING_JOBS, limit=10, offset=0))
    assert [row["entity_id"] for row in worklist] == ["job-2"]
    outbox = asyncio.run(repository.list_outbox(limit=10))
    assert [entry["payload"]["kind"] for entry in outbox] == ["job-approved"]


def test_commit_from_stale_snapshot_is_rejected() -> None:
    repository = _seeded_repository()

    async def run() -> None:
        snapshot = await repository.get_snapshot(EntityKind.JOB, "job-1")
        first = apply_transition(EntityKind.JOB, "job-1", snapshot, ADMIN, "approved", now=T0 + timedelta(seconds=1))
        second = apply_transition(EntityKind.JOB, "job-1", snapshot, ADMIN, "rejected", now=T0 + timedelta(seconds=2))
        await repository.commit_transition(first)
        await repository.commit_transition(second)

    with pytest.raises(StaleSnapshotError):
        asyncio.run(run())

    stored = asyncio.run(repository.get_snapshot(EntityKind.JOB, "job-1"))
    assert stored.status is JobStatus.APPROVED
    assert asyncio.run(repository.get_counters(owner_id="emp-1")) == {PENDING_JOBS: 1}


def test_missing_entity_raises_not_found() -> None:
    repository = InMemoryRepository()
    with pytest.raises(EntityNotFoundError):
        asyncio.run(repository.get_snapshot(EntityKind.COMPANY, "missing"))


def test_outbox_deduplicates_and_acks() -> None:
    repository = _seeded_repository()

    async def run() -> list[dict]:
        snapshot = await repository.get_snapshot(EntityKind.JOB, "job-1")
        result = apply_transition(EntityKind.JOB, "job-1", snapshot, ADMIN, "approved", now=T0 + timedelta(seconds=1))
        await repository.commit_transition(result)
        # A replayed commit of the same result must not enqueue the intent twice.
        repository.entities[EntityKind.JOB]["job-1"] = snapshot
        await repository.commit_transition(result)
        entries = await repository.list_outbox(limit=10)
        await repository.ack_outbox(entry_id=entries[0]["id"])
        return entries

    entries = asyncio.run(run())

    assert len(entries) == 1
    assert asyncio.run(repository.list_outbox(limit=10)) == []


def test_rebuild_recovers_from_counter_drift() -> None:
    repository = _seeded_repository()
    repository.derived.counters[("emp-1", PENDING_JOBS)] = 42
    repository.derived.worklists[PENDING_JOBS].add("ghost")

    summary = asyncio.run(repository.rebuild_derived_state())

    assert summary == {"counters": 1, "worklist_entries": 2}
    assert asyncio.run(repository.get_counters(owner_id="emp-1")) == {PENDING_JOBS: 2}


def test_legal_documents_round_trip_and_validate_ids() -> None:
    repository = InMemoryRepository()

    saved = asyncio.run(
        repository.save_legal_document(doc_id="privacyPolicy", content="We keep data.", actor_user_id="root-1")
    )
    assert saved["updated_by"] == "root-1"
    assert asyncio.run(repository.get_legal_document(doc_id="privacyPolicy"))["content"] == "We keep data."
    assert repository.moderation_events[-1]["event_type"] == "content_updated"

    with pytest.raises(EntityNotFoundError):
        asyncio.run(repository.get_legal_document(doc_id="termsOfService"))
    with pytest.raises(RepositoryValidationError):
        asyncio.run(repository.get_legal_document(doc_id="cookiePolicy"))
