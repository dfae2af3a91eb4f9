#!/usr/bin/env python3
"""Emit deterministic SQL that grants a platform-staff role to an existing account."""

from __future__ import annotations

import argparse

STAFF_ROLES = (
    "admin",
    "superAdmin",
    "moderator",
    "supportAgent",
    "dataAnalyst",
    "complianceOfficer",
    "systemMonitor",
)


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, role: str, user_id: str | None, email: str | None, actor: str) -> str:
    if role not in STAFF_ROLES:
        raise ValueError(f"unsupported role: {role}")

    role_value = _quote_sql(role)
    actor_value = _quote_sql(actor)

    if user_id:
        identity_where = f"id = {_quote_sql(user_id)}::uuid"
        target_uid = _quote_sql(user_id)
        target_payload = f"jsonb_build_object('user_id', {_quote_sql(user_id)}, 'role', {role_value})"
    else:
        assert email is not None
        identity_where = f"email = {_quote_sql(email)}"
        target_uid = f"(select id::text from auth.users where email = {_quote_sql(email)})"
        target_payload = f"jsonb_build_object('email', {_quote_sql(email)}, 'role', {role_value})"

    return f"""-- Platform staff role bootstrap SQL
-- Run this in a privileged Postgres session against the identity and moderation schemas.

update auth.users
set raw_app_meta_data = coalesce(raw_app_meta_data, '{{}}'::jsonb) || jsonb_build_object('role', {role_value})
where {identity_where};

update users
set role = {role_value}, updated_at = now()
where uid = {target_uid};

insert into moderation_events (entity_type, entity_id, event_type, actor_type, actor_id, payload)
values ('user', {target_uid}, 'role_bootstrap', 'system', {actor_value}, {target_payload});
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to bootstrap a platform-staff role.")
    parser.add_argument(
        "--role",
        choices=STAFF_ROLES,
        default="admin",
        help="Role to assign in auth.users.raw_app_meta_data.role and users.role",
    )
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="auth.users id (UUID)")
    identity_group.add_argument("--email", help="auth.users email")
    parser.add_argument(
        "--actor",
        default="system",
        help="Actor label recorded on the moderation event",
    )
    args = parser.parse_args()

    print(
        render_sql(
            role=args.role,
            user_id=args.user_id,
            email=args.email,
            actor=args.actor,
        )
    )


if __name__ == "__main__":
    main()
