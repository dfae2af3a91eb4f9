from __future__ import annotations

import asyncio
import hashlib
import os
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

import moderation.core.security as security
from moderation.core.config import get_settings
from moderation.main import app
from moderation.services.entities import (
    ApplicationSnapshot,
    ApplicationStatus,
    CompanySnapshot,
    CompanyStatus,
    JobSnapshot,
    JobStatus,
    UserSnapshot,
    UserStatus,
)
from moderation.services.repository import MachineCredentialRecord, get_repository
from moderation.services.store import InMemoryRepository

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
AUTH = {"Authorization": "Bearer token"}
MACHINE = {"X-Module-Id": "notifier", "X-API-Key": "relay-secret"}


def _repository() -> InMemoryRepository:
    repository = InMemoryRepository()
    repository.seed(
        CompanySnapshot(id="co-1", status=CompanyStatus.APPROVED, updated_at=T0, recruiter_uids=("emp-1",)),
        UserSnapshot(uid="emp-1", role="employer", status=UserStatus.ACTIVE, updated_at=T0, company_id="co-1"),
        UserSnapshot(uid="admin-1", role="admin", status=UserStatus.ACTIVE, updated_at=T0),
        UserSnapshot(uid="admin-2", role="admin", status=UserStatus.ACTIVE, updated_at=T0),
        UserSnapshot(uid="seeker-1", role="jobSeeker", status=UserStatus.ACTIVE, updated_at=T0),
        JobSnapshot(id="job-1", status=JobStatus.PENDING, posted_by_id="emp-1", company_id="co-1", updated_at=T0),
        ApplicationSnapshot(
            id="app-1",
            job_id="job-1",
            applicant_id="seeker-1",
            company_id="co-1",
            status=ApplicationStatus.APPLIED,
            updated_at=T0,
        ),
    )
    repository.register_machine_credential(
        MachineCredentialRecord(
            module_db_id="module-1",
            module_id="notifier",
            scopes=["notifications:relay", "derived:rebuild"],
            key_hash=hashlib.sha256(b"relay-secret").hexdigest(),
        )
    )
    asyncio.run(repository.rebuild_derived_state())
    return repository


@pytest.fixture
def repository() -> InMemoryRepository:
    return _repository()


@pytest.fixture
def api_client(repository: InMemoryRepository) -> TestClient:
    os.environ["JBM_AUTH_URL"] = "https://identity.example.test"
    os.environ["JBM_AUTH_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()

    app.dependency_overrides[get_repository] = lambda: repository

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    os.environ.pop("JBM_AUTH_URL", None)
    os.environ.pop("JBM_AUTH_ANON_KEY", None)
    get_settings.cache_clear()


def _mock_identity_user(monkeypatch: pytest.MonkeyPatch, user: dict[str, Any]) -> None:
    async def _fake_fetch(**_: Any) -> dict[str, Any]:
        return user

    monkeypatch.setattr(security, "_fetch_identity_user", _fake_fetch)


def test_moderator_approves_job(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_identity_user(monkeypatch, {"id": "mod-1", "app_metadata": {"role": "moderator"}})

    response = api_client.patch("/jobs/job-1/status", json={"status": "approved"}, headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["from_status"] == "pending"
    assert body["to_status"] == "approved"
    assert body["notification_intents"][0]["kind"] == "job-approved"

    worklist = api_client.get("/moderation/worklists/pending_jobs", headers=AUTH)
    assert worklist.status_code == 200
    assert worklist.json() == []


def test_moderator_suspend_job_returns_guard_reason(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_identity_user(monkeypatch, {"id": "mod-1", "app_metadata": {"role": "moderator"}})

    response = api_client.patch("/jobs/job-1/status", json={"status": "suspended"}, headers=AUTH)

    assert response.status_code == 403
    assert response.json()["detail"] == "Moderators cannot suspend jobs."


def test_role_in_user_metadata_is_ignored(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_identity_user(monkeypatch, {"id": "seeker-9", "user_metadata": {"role": "superAdmin"}})

    response = api_client.patch("/jobs/job-1/status", json={"status": "approved"}, headers=AUTH)

    assert response.status_code == 403
    assert response.json()["detail"] == "You do not have permission to change job statuses."


def test_illegal_edge_is_conflict(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_identity_user(monkeypatch, {"id": "admin-1", "app_metadata": {"role": "admin"}})

    response = api_client.patch("/users/seeker-1/status", json={"status": "active"}, headers=AUTH)

    assert response.status_code == 409
    assert "active -> active" in response.json()["detail"]


def test_unknown_entity_is_not_found(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_identity_user(monkeypatch, {"id": "admin-1", "app_metadata": {"role": "admin"}})

    response = api_client.patch("/companies/co-404/status", json={"status": "approved"}, headers=AUTH)

    assert response.status_code == 404


def test_admin_cannot_suspend_other_admin(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_identity_user(monkeypatch, {"id": "admin-1", "app_metadata": {"role": "admin"}})

    response = api_client.patch(
        "/users/admin-2/status",
        json={"status": "suspended", "reason": "policy"},
        headers=AUTH,
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Admins cannot change the status of other admins or super admins."


def test_generic_transition_endpoint_records_audit_event(
    api_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _mock_identity_user(monkeypatch, {"id": "admin-1", "app_metadata": {"roles": ["superAdmin"]}})

    response = api_client.post(
        "/transitions",
        json={"entity_kind": "user", "entity_id": "seeker-1", "to_status": "suspended", "reason": "Abuse"},
        headers=AUTH,
    )
    assert response.status_code == 200
    assert response.json()["flags"] == ["account-restricted"]
    assert response.json()["audit_entry"]["reason"] == "Abuse"

    events = api_client.get(
        "/moderation/events",
        params={"entity_kind": "user", "entity_id": "seeker-1"},
        headers=AUTH,
    )
    assert events.status_code == 200
    assert events.json()[0]["payload"]["to_status"] == "suspended"


def test_employer_pipeline_and_applicant_withdrawal(
    api_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _mock_identity_user(monkeypatch, {"id": "seeker-1", "app_metadata": {}})
    withdrawn = api_client.post("/applications/app-1/withdraw", headers=AUTH)
    assert withdrawn.status_code == 200
    assert withdrawn.json()["to_status"] == "Withdrawn by Applicant"

    _mock_identity_user(monkeypatch, {"id": "emp-1", "app_metadata": {"role": "employer", "company_id": "co-1"}})
    response = api_client.patch(
        "/applications/app-1/status",
        json={"status": "Reviewed", "employer_notes": "late"},
        headers=AUTH,
    )
    assert response.status_code == 409


def test_employer_reads_own_counters_only(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_identity_user(monkeypatch, {"id": "emp-1", "app_metadata": {"role": "employer", "company_id": "co-1"}})

    own = api_client.get("/moderation/counters/emp-1", headers=AUTH)
    assert own.status_code == 200
    assert own.json()["counters"] == {"pending_jobs": 1}

    company = api_client.get("/moderation/counters/co-1", headers=AUTH)
    assert company.status_code == 200
    assert company.json()["counters"] == {"applications:Applied": 1}

    other = api_client.get("/moderation/counters/platform", headers=AUTH)
    assert other.status_code == 403


def test_legal_targets_and_explain_denial_are_public(api_client: TestClient) -> None:
    targets = api_client.get("/moderation/legal-targets", params={"entity_kind": "company", "from_status": "pending"})
    assert targets.status_code == 200
    assert targets.json()["targets"] == ["pending", "approved", "rejected", "deleted"]

    explanation = api_client.get(
        "/moderation/explain-denial",
        params={
            "entity_kind": "company",
            "actor_role": "dataAnalyst",
            "from_status": "pending",
            "to_status": "approved",
        },
    )
    assert explanation.status_code == 200
    assert explanation.json()["allowed"] is False
    assert explanation.json()["reason"] == "You do not have permission to change company statuses."

    unknown = api_client.get("/moderation/legal-targets", params={"entity_kind": "job", "from_status": "draft"})
    assert unknown.status_code == 422


def test_only_super_admin_updates_legal_documents(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_identity_user(monkeypatch, {"id": "admin-1", "app_metadata": {"role": "admin"}})
    denied = api_client.put("/admin/legal/termsOfService", json={"content": "Be nice."}, headers=AUTH)
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Only Super Admins can update legal documents."

    _mock_identity_user(monkeypatch, {"id": "root-1", "app_metadata": {"role": "superAdmin"}})
    saved = api_client.put("/admin/legal/termsOfService", json={"content": "Be nice."}, headers=AUTH)
    assert saved.status_code == 200

    fetched = api_client.get("/admin/legal/termsOfService")
    assert fetched.status_code == 200
    assert fetched.json()["updated_by"] == "root-1"


def test_machine_relay_drains_outbox(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_identity_user(monkeypatch, {"id": "admin-1", "app_metadata": {"role": "admin"}})
    api_client.patch("/jobs/job-1/status", json={"status": "rejected"}, headers=AUTH)

    outbox = api_client.get("/notifications/outbox", headers=MACHINE)
    assert outbox.status_code == 200
    (entry,) = outbox.json()
    assert entry["payload"]["message"] == "Your job posting has been rejected. Reason: Rejected by admin"

    acked = api_client.post(f"/notifications/outbox/{entry['id']}/ack", headers=MACHINE)
    assert acked.status_code == 200
    assert acked.json()["dispatched_at"] is not None
    assert api_client.get("/notifications/outbox", headers=MACHINE).json() == []


def test_outbox_requires_machine_credentials(api_client: TestClient) -> None:
    response = api_client.get("/notifications/outbox", headers={"X-Module-Id": "notifier", "X-API-Key": "wrong"})
    assert response.status_code == 401


def test_rebuild_accepts_machine_and_admins_only(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    machine = api_client.post("/admin/derived/rebuild", headers=MACHINE)
    assert machine.status_code == 200
    assert machine.json()["worklist_entries"] == 1

    _mock_identity_user(monkeypatch, {"id": "mod-1", "app_metadata": {"role": "moderator"}})
    moderator = api_client.post("/admin/derived/rebuild", headers=AUTH)
    assert moderator.status_code == 403


def test_suspended_admin_loses_moderation_writes(
    api_client: TestClient,
    repository: InMemoryRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    repository.seed(UserSnapshot(uid="admin-9", role="admin", status=UserStatus.SUSPENDED, updated_at=T0))
    _mock_identity_user(monkeypatch, {"id": "admin-9", "app_metadata": {"role": "admin"}})

    job = api_client.patch("/jobs/job-1/status", json={"status": "approved"}, headers=AUTH)
    assert job.status_code == 403
    assert job.json()["detail"] == "Your account is currently suspended."

    user = api_client.patch("/users/seeker-1/status", json={"status": "suspended"}, headers=AUTH)
    assert user.status_code == 403

    rebuild = api_client.post("/admin/derived/rebuild", headers=AUTH)
    assert rebuild.status_code == 403
