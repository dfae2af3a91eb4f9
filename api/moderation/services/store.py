from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from itertools import count
from typing import Any

from moderation.services.cascades import CascadeSet, DerivedState, recount
from moderation.services.engine import TransitionResult
from moderation.services.entities import (
    ApplicationSnapshot,
    CompanySnapshot,
    EntityKind,
    JobSnapshot,
    Snapshot,
    kind_of,
)
from moderation.services.repository import (
    LEGAL_DOCUMENT_IDS,
    MachineCredentialRecord,
    RepositoryNotFoundError,
    RepositoryStaleSnapshotError,
    RepositoryValidationError,
)


class InMemoryRepository:
    """Process-local repository with the same compare-and-set contract as Postgres.

    Used for local development (``JBM_STORAGE_BACKEND=memory``) and tests. All
    writes go through a single ``asyncio.Lock``, so the version check and the
    write are one atomic step.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.entities: dict[EntityKind, dict[str, Snapshot]] = {kind: {} for kind in EntityKind}
        self.derived = DerivedState()
        self.moderation_events: list[dict[str, Any]] = []
        self.outbox: dict[int, dict[str, Any]] = {}
        self.legal_documents: dict[str, dict[str, Any]] = {}
        self.machine_credentials: dict[str, list[MachineCredentialRecord]] = {}
        self._event_ids = count(1)
        self._outbox_ids = count(1)

    async def close(self) -> None:
        return None

    def seed(self, *snapshots: Snapshot) -> None:
        """Insert snapshots as-is, without derived-state bookkeeping."""
        for snapshot in snapshots:
            self.entities[kind_of(snapshot)][snapshot.id] = snapshot

    def register_machine_credential(self, record: MachineCredentialRecord) -> None:
        self.machine_credentials.setdefault(record.module_id, []).append(record)

    async def get_machine_credentials(self, module_id: str) -> list[MachineCredentialRecord]:
        return list(self.machine_credentials.get(module_id, []))

    async def get_snapshot(self, kind: EntityKind, entity_id: str) -> Snapshot:
        snapshot = await self.find_snapshot(kind, entity_id)
        if snapshot is None:
            raise RepositoryNotFoundError(f"{kind.value} not found")
        return snapshot

    async def find_snapshot(self, kind: EntityKind, entity_id: str) -> Snapshot | None:
        return self.entities[kind].get(entity_id)

    async def commit_transition(self, result: TransitionResult) -> None:
        kind = result.kind
        snapshot = result.snapshot
        async with self._lock:
            stored = self.entities[kind].get(snapshot.id)
            if stored is None:
                raise RepositoryNotFoundError(f"{kind.value} not found")
            if stored.updated_at != result.expected_updated_at:
                raise RepositoryStaleSnapshotError(f"{kind.value} {snapshot.id} changed since it was read")

            self.entities[kind][snapshot.id] = snapshot
            self._apply_cascades(result.cascades)

            if result.audit_entry is not None:
                entry = result.audit_entry
                self.moderation_events.append(
                    {
                        "id": next(self._event_ids),
                        "entity_type": entry.entity_kind.value,
                        "entity_id": entry.entity_id,
                        "event_type": "status_changed",
                        "actor_type": "human",
                        "actor_id": entry.actor_id,
                        "payload": entry.to_payload(),
                        "created_at": entry.timestamp,
                    }
                )

            known_keys = {entry["dedupe_key"] for entry in self.outbox.values()}
            for intent in result.notification_intents:
                if intent.dedupe_key in known_keys:
                    continue
                entry_id = next(self._outbox_ids)
                self.outbox[entry_id] = {
                    "id": entry_id,
                    "dedupe_key": intent.dedupe_key,
                    "payload": intent.to_payload(),
                    "created_at": datetime.now(timezone.utc),
                    "dispatched_at": None,
                }
                known_keys.add(intent.dedupe_key)

    def _apply_cascades(self, cascades: CascadeSet) -> None:
        for change in cascades.worklist_changes:
            members = self.derived.worklists.setdefault(change.worklist, set())
            if change.member:
                members.add(change.entity_id)
            else:
                members.discard(change.entity_id)

        for delta in cascades.counter_deltas:
            key = (delta.owner_id, delta.counter)
            self.derived.counters[key] = max(self.derived.counters.get(key, 0) + delta.delta, 0)

    async def list_worklist(self, *, worklist: str, limit: int, offset: int) -> list[dict[str, Any]]:
        members = sorted(self.derived.worklists.get(worklist, set()))
        return [{"worklist": worklist, "entity_id": entity_id, "added_at": None} for entity_id in members][
            offset : offset + limit
        ]

    async def get_counters(self, *, owner_id: str) -> dict[str, int]:
        return {
            counter: value
            for (owner, counter), value in sorted(self.derived.counters.items())
            if owner == owner_id
        }

    async def list_moderation_events(
        self,
        *,
        kind: EntityKind,
        entity_id: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        events = [
            event
            for event in self.moderation_events
            if event["entity_type"] == kind.value and event["entity_id"] == entity_id
        ]
        return events[offset : offset + limit]

    async def rebuild_derived_state(self) -> dict[str, int]:
        async with self._lock:
            self.derived = recount(
                jobs=[s for s in self.entities[EntityKind.JOB].values() if isinstance(s, JobSnapshot)],
                companies=[
                    s for s in self.entities[EntityKind.COMPANY].values() if isinstance(s, CompanySnapshot)
                ],
                applications=[
                    s
                    for s in self.entities[EntityKind.APPLICATION].values()
                    if isinstance(s, ApplicationSnapshot)
                ],
            )
        entries = sum(len(members) for members in self.derived.worklists.values())
        return {"counters": len(self.derived.counters), "worklist_entries": entries}

    async def list_outbox(self, *, limit: int) -> list[dict[str, Any]]:
        pending = [entry for entry in self.outbox.values() if entry["dispatched_at"] is None]
        return [dict(entry) for entry in sorted(pending, key=lambda entry: entry["id"])[:limit]]

    async def ack_outbox(self, *, entry_id: int) -> dict[str, Any]:
        async with self._lock:
            entry = self.outbox.get(entry_id)
            if entry is None:
                raise RepositoryNotFoundError("outbox entry not found")
            if entry["dispatched_at"] is None:
                entry["dispatched_at"] = datetime.now(timezone.utc)
            return dict(entry)

    async def get_legal_document(self, *, doc_id: str) -> dict[str, Any]:
        self._validate_legal_document_id(doc_id)
        document = self.legal_documents.get(doc_id)
        if document is None:
            raise RepositoryNotFoundError("legal document not found")
        return dict(document)

    async def save_legal_document(self, *, doc_id: str, content: str, actor_user_id: str | None) -> dict[str, Any]:
        self._validate_legal_document_id(doc_id)
        async with self._lock:
            document = {
                "id": doc_id,
                "content": content,
                "updated_at": datetime.now(timezone.utc),
                "updated_by": actor_user_id,
            }
            self.legal_documents[doc_id] = document
            self.moderation_events.append(
                {
                    "id": next(self._event_ids),
                    "entity_type": "legal_document",
                    "entity_id": doc_id,
                    "event_type": "content_updated",
                    "actor_type": "human",
                    "actor_id": actor_user_id,
                    "payload": {"length": len(content)},
                    "created_at": document["updated_at"],
                }
            )
            return dict(document)

    @staticmethod
    def _validate_legal_document_id(doc_id: str) -> None:
        if doc_id not in LEGAL_DOCUMENT_IDS:
            raise RepositoryValidationError(f"unknown legal document: {doc_id}")
