from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from moderation.core.config import get_settings
from moderation.services.cascades import CascadeSet, recount
from moderation.services.engine import TransitionResult
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
from moderation.services.errors import EntityNotFoundError, StaleSnapshotError


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError, EntityNotFoundError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write conflicts with stored state."""


class RepositoryStaleSnapshotError(RepositoryConflictError, StaleSnapshotError):
    """Raised when the stored version no longer matches the snapshot the write was computed from."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


@dataclass(slots=True)
class MachineCredentialRecord:
    module_db_id: str
    module_id: str
    scopes: list[str]
    key_hash: str


LEGAL_DOCUMENT_IDS = {"privacyPolicy", "termsOfService"}

_SNAPSHOT_SQL: dict[EntityKind, str] = {
    EntityKind.JOB: """
        select id, status, moderation_reason, posted_by_id, company_id, updated_at
        from jobs
        where id = $1
    """,
    EntityKind.COMPANY: """
        select id, status, moderation_reason, recruiter_uids, admin_uids, updated_at
        from companies
        where id = $1
    """,
    EntityKind.USER: """
        select uid, role, status, company_id, is_company_admin, updated_at
        from users
        where uid = $1
    """,
    EntityKind.APPLICATION: """
        select id, job_id, applicant_id, company_id, status, employer_notes, updated_at
        from applications
        where id = $1
    """,
}

# Conditional writes: the row only changes if nobody committed since the snapshot was read.
_COMPARE_AND_SET_SQL: dict[EntityKind, str] = {
    EntityKind.JOB: """
        update jobs
        set status = $2, moderation_reason = $3, updated_at = $4
        where id = $1 and updated_at = $5
        returning id
    """,
    EntityKind.COMPANY: """
        update companies
        set status = $2, moderation_reason = $3, updated_at = $4
        where id = $1 and updated_at = $5
        returning id
    """,
    EntityKind.USER: """
        update users
        set status = $2, updated_at = $3
        where uid = $1 and updated_at = $4
        returning uid
    """,
    EntityKind.APPLICATION: """
        update applications
        set status = $2, employer_notes = $3, updated_at = $4
        where id = $1 and updated_at = $5
        returning id
    """,
}

_EXISTS_SQL: dict[EntityKind, str] = {
    EntityKind.JOB: "select 1 from jobs where id = $1",
    EntityKind.COMPANY: "select 1 from companies where id = $1",
    EntityKind.USER: "select 1 from users where uid = $1",
    EntityKind.APPLICATION: "select 1 from applications where id = $1",
}


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_machine_credentials(self, module_id: str) -> list[MachineCredentialRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select
              m.id::text as module_db_id,
              m.module_id,
              m.scopes,
              mc.key_hash
            from modules m
            join module_credentials mc on mc.module_id = m.id
            where m.module_id = $1
              and m.enabled = true
              and mc.is_active = true
              and mc.revoked_at is null
              and (mc.expires_at is null or mc.expires_at > now())
            """,
            module_id,
        )
        return [
            MachineCredentialRecord(
                module_db_id=row["module_db_id"],
                module_id=row["module_id"],
                scopes=list(row["scopes"] or []),
                key_hash=row["key_hash"],
            )
            for row in rows
        ]

    async def get_snapshot(self, kind: EntityKind, entity_id: str) -> Snapshot:
        snapshot = await self.find_snapshot(kind, entity_id)
        if snapshot is None:
            raise RepositoryNotFoundError(f"{kind.value} not found")
        return snapshot

    async def find_snapshot(self, kind: EntityKind, entity_id: str) -> Snapshot | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(_SNAPSHOT_SQL[kind], entity_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError(f"invalid {kind.value} id") from exc
        if row is None:
            return None
        return self._row_to_snapshot(kind, row)

    async def commit_transition(self, result: TransitionResult) -> None:
        pool = await self._get_pool()
        kind = result.kind
        snapshot = result.snapshot

        async with pool.acquire() as conn:
            async with conn.transaction():
                updated = await conn.fetchval(
                    _COMPARE_AND_SET_SQL[kind],
                    *self._compare_and_set_args(result),
                )
                if updated is None:
                    exists = await conn.fetchval(_EXISTS_SQL[kind], snapshot.id)
                    if not exists:
                        raise RepositoryNotFoundError(f"{kind.value} not found")
                    raise RepositoryStaleSnapshotError(
                        f"{kind.value} {snapshot.id} changed since it was read"
                    )

                await self._apply_cascades(conn, result.cascades)

                if result.audit_entry is not None:
                    entry = result.audit_entry
                    await conn.execute(
                        """
                        insert into moderation_events (
                          entity_type,
                          entity_id,
                          event_type,
                          actor_type,
                          actor_id,
                          payload,
                          created_at
                        )
                        values ($1, $2, 'status_changed', 'human', $3, $4::jsonb, $5)
                        """,
                        entry.entity_kind.value,
                        entry.entity_id,
                        entry.actor_id,
                        json.dumps(entry.to_payload()),
                        entry.timestamp,
                    )

                for intent in result.notification_intents:
                    await conn.execute(
                        """
                        insert into notification_outbox (
                          dedupe_key,
                          kind,
                          entity_type,
                          entity_id,
                          recipient_ids,
                          payload
                        )
                        values ($1, $2, $3, $4, $5::text[], $6::jsonb)
                        on conflict (dedupe_key) do nothing
                        """,
                        intent.dedupe_key,
                        intent.kind,
                        intent.entity_kind.value,
                        intent.entity_id,
                        list(intent.recipient_ids),
                        json.dumps(intent.to_payload()),
                    )

    async def _apply_cascades(self, conn: asyncpg.Connection, cascades: CascadeSet) -> None:
        for change in cascades.worklist_changes:
            if change.member:
                await conn.execute(
                    """
                    insert into worklist_entries (worklist, entity_id)
                    values ($1, $2)
                    on conflict (worklist, entity_id) do nothing
                    """,
                    change.worklist,
                    change.entity_id,
                )
            else:
                await conn.execute(
                    "delete from worklist_entries where worklist = $1 and entity_id = $2",
                    change.worklist,
                    change.entity_id,
                )

        for delta in cascades.counter_deltas:
            await conn.execute(
                """
                insert into derived_counters (owner_id, counter, value)
                values ($1, $2, greatest($3::integer, 0))
                on conflict (owner_id, counter) do update
                set value = greatest(derived_counters.value + $3::integer, 0),
                    updated_at = now()
                """,
                delta.owner_id,
                delta.counter,
                delta.delta,
            )

    async def list_worklist(self, *, worklist: str, limit: int, offset: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select worklist, entity_id, added_at
            from worklist_entries
            where worklist = $1
            order by added_at asc, entity_id asc
            limit $2 offset $3
            """,
            worklist,
            limit,
            offset,
        )
        return [dict(row) for row in rows]

    async def get_counters(self, *, owner_id: str) -> dict[str, int]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            "select counter, value from derived_counters where owner_id = $1 order by counter",
            owner_id,
        )
        return {row["counter"]: int(row["value"]) for row in rows}

    async def list_moderation_events(
        self,
        *,
        kind: EntityKind,
        entity_id: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select
              id,
              entity_type,
              entity_id,
              event_type,
              actor_type,
              actor_id,
              payload,
              created_at
            from moderation_events
            where entity_type = $1 and entity_id = $2
            order by created_at asc, id asc
            limit $3 offset $4
            """,
            kind.value,
            entity_id,
            limit,
            offset,
        )
        return [self._event_row_to_dict(row) for row in rows]

    async def rebuild_derived_state(self) -> dict[str, int]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                job_rows = await conn.fetch(
                    "select id, status, moderation_reason, posted_by_id, company_id, updated_at from jobs"
                )
                company_rows = await conn.fetch(
                    """
                    select id, status, moderation_reason, recruiter_uids, admin_uids, updated_at
                    from companies
                    """
                )
                application_rows = await conn.fetch(
                    """
                    select id, job_id, applicant_id, company_id, status, employer_notes, updated_at
                    from applications
                    """
                )
                state = recount(
                    jobs=[self._row_to_snapshot(EntityKind.JOB, row) for row in job_rows],
                    companies=[self._row_to_snapshot(EntityKind.COMPANY, row) for row in company_rows],
                    applications=[
                        self._row_to_snapshot(EntityKind.APPLICATION, row) for row in application_rows
                    ],
                )

                await conn.execute("delete from derived_counters")
                await conn.execute("delete from worklist_entries")
                await conn.executemany(
                    "insert into derived_counters (owner_id, counter, value) values ($1, $2, $3)",
                    [(owner_id, counter, value) for (owner_id, counter), value in state.counters.items()],
                )
                entries = [
                    (worklist, entity_id)
                    for worklist, members in state.worklists.items()
                    for entity_id in sorted(members)
                ]
                await conn.executemany(
                    "insert into worklist_entries (worklist, entity_id) values ($1, $2)",
                    entries,
                )

        return {"counters": len(state.counters), "worklist_entries": len(entries)}

    async def list_outbox(self, *, limit: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select id, dedupe_key, payload, created_at, dispatched_at
            from notification_outbox
            where dispatched_at is null
            order by id asc
            limit $1
            """,
            limit,
        )
        return [self._outbox_row_to_dict(row) for row in rows]

    async def ack_outbox(self, *, entry_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            update notification_outbox
            set dispatched_at = coalesce(dispatched_at, now())
            where id = $1
            returning id, dedupe_key, payload, created_at, dispatched_at
            """,
            entry_id,
        )
        if row is None:
            raise RepositoryNotFoundError("outbox entry not found")
        return self._outbox_row_to_dict(row)

    async def get_legal_document(self, *, doc_id: str) -> dict[str, Any]:
        self._validate_legal_document_id(doc_id)
        pool = await self._get_pool()
        row = await pool.fetchrow(
            "select id, content, updated_at, updated_by from legal_documents where id = $1",
            doc_id,
        )
        if row is None:
            raise RepositoryNotFoundError("legal document not found")
        return dict(row)

    async def save_legal_document(self, *, doc_id: str, content: str, actor_user_id: str | None) -> dict[str, Any]:
        self._validate_legal_document_id(doc_id)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    insert into legal_documents (id, content, updated_at, updated_by)
                    values ($1, $2, now(), $3)
                    on conflict (id) do update
                    set content = excluded.content,
                        updated_at = excluded.updated_at,
                        updated_by = excluded.updated_by
                    returning id, content, updated_at, updated_by
                    """,
                    doc_id,
                    content,
                    actor_user_id,
                )
                await conn.execute(
                    """
                    insert into moderation_events (
                      entity_type,
                      entity_id,
                      event_type,
                      actor_type,
                      actor_id,
                      payload
                    )
                    values ('legal_document', $1, 'content_updated', 'human', $2, $3::jsonb)
                    """,
                    doc_id,
                    actor_user_id,
                    json.dumps({"length": len(content)}),
                )
        return dict(row)

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("JBM_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _compare_and_set_args(result: TransitionResult) -> tuple[Any, ...]:
        snapshot = result.snapshot
        expected = result.expected_updated_at
        if isinstance(snapshot, (JobSnapshot, CompanySnapshot)):
            return (snapshot.id, snapshot.status.value, snapshot.moderation_reason, snapshot.updated_at, expected)
        if isinstance(snapshot, ApplicationSnapshot):
            return (snapshot.id, snapshot.status.value, snapshot.employer_notes, snapshot.updated_at, expected)
        return (snapshot.id, snapshot.status.value, snapshot.updated_at, expected)

    @staticmethod
    def _row_to_snapshot(kind: EntityKind, row: asyncpg.Record) -> Snapshot:
        if kind is EntityKind.JOB:
            return JobSnapshot(
                id=row["id"],
                status=JobStatus(row["status"]),
                posted_by_id=row["posted_by_id"],
                company_id=row["company_id"],
                updated_at=row["updated_at"],
                moderation_reason=row["moderation_reason"],
            )
        if kind is EntityKind.COMPANY:
            return CompanySnapshot(
                id=row["id"],
                status=CompanyStatus(row["status"]),
                updated_at=row["updated_at"],
                recruiter_uids=tuple(row["recruiter_uids"] or ()),
                admin_uids=tuple(row["admin_uids"] or ()),
                moderation_reason=row["moderation_reason"],
            )
        if kind is EntityKind.USER:
            return UserSnapshot(
                uid=row["uid"],
                role=row["role"],
                status=UserStatus(row["status"]),
                updated_at=row["updated_at"],
                company_id=row["company_id"],
                is_company_admin=bool(row["is_company_admin"]),
            )
        return ApplicationSnapshot(
            id=row["id"],
            job_id=row["job_id"],
            applicant_id=row["applicant_id"],
            company_id=row["company_id"],
            status=ApplicationStatus(row["status"]),
            updated_at=row["updated_at"],
            employer_notes=row["employer_notes"],
        )

    @staticmethod
    def _event_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        payload = row["payload"]
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                payload = {}
        return {
            "id": row["id"],
            "entity_type": row["entity_type"],
            "entity_id": row["entity_id"],
            "event_type": row["event_type"],
            "actor_type": row["actor_type"],
            "actor_id": row["actor_id"],
            "payload": payload or {},
            "created_at": row["created_at"],
        }

    @staticmethod
    def _outbox_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        payload = row["payload"]
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                payload = {}
        return {
            "id": row["id"],
            "dedupe_key": row["dedupe_key"],
            "payload": payload or {},
            "created_at": row["created_at"],
            "dispatched_at": row["dispatched_at"],
        }

    @staticmethod
    def _validate_legal_document_id(doc_id: str) -> None:
        if doc_id not in LEGAL_DOCUMENT_IDS:
            raise RepositoryValidationError(f"unknown legal document: {doc_id}")


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    if settings.storage_backend == "memory":
        from moderation.services.store import InMemoryRepository

        return InMemoryRepository()  # type: ignore[return-value]
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
    )
