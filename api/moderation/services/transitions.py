"""Service surface over the transition engine.

Callers hand in an explicit ``Actor``; every request re-reads the entity, so no
decision is ever made against a cached snapshot. A commit that loses the
compare-and-set race is retried against a fresh read a bounded number of times
before ``StaleSnapshotError`` reaches the caller.
"""

from __future__ import annotations

import logging
from enum import Enum

from moderation.core.auth import Principal
from moderation.services.engine import TransitionResult, apply_transition
from moderation.services.entities import (
    ApplicationStatus,
    CompanySnapshot,
    EntityKind,
    UserSnapshot,
    parse_status,
)
from moderation.services.errors import InvalidTransitionError, StaleSnapshotError
from moderation.services.guard import authorize
from moderation.services.roles import Actor, ActorCapabilities, Role, parse_role
from moderation.services.transition_table import is_legal_transition
from moderation.services.transition_table import list_legal_targets as _legal_targets

logger = logging.getLogger(__name__)

RESUBMITTABLE_KINDS = frozenset({EntityKind.JOB, EntityKind.COMPANY})


class TransitionService:
    def __init__(self, repository, *, stale_retry_attempts: int = 1) -> None:
        self.repository = repository
        self.stale_retry_attempts = max(stale_retry_attempts, 0)

    async def resolve_actor(self, principal: Principal) -> Actor:
        """Build an ``Actor`` from a verified principal plus freshly read account state."""
        company_id = principal.company_id
        is_company_admin = principal.is_company_admin
        account_status = "active"

        user = await self.repository.find_snapshot(EntityKind.USER, principal.subject)
        if isinstance(user, UserSnapshot):
            account_status = user.status.value
            company_id = company_id or user.company_id
            is_company_admin = is_company_admin or user.is_company_admin

        company_status = None
        if company_id:
            company = await self.repository.find_snapshot(EntityKind.COMPANY, company_id)
            if isinstance(company, CompanySnapshot):
                company_status = company.status.value

        return Actor(
            role=parse_role(principal.role),
            capabilities=ActorCapabilities(
                uid=principal.subject,
                is_company_admin=is_company_admin,
                company_id=company_id,
                company_status=company_status,
                account_status=account_status,
            ),
        )

    async def request_transition(
        self,
        kind: EntityKind,
        entity_id: str,
        actor: Actor,
        to: str | Enum,
        reason: str | None = None,
        *,
        employer_notes: str | None = None,
    ) -> TransitionResult:
        attempt = 0
        while True:
            snapshot = await self.repository.get_snapshot(kind, entity_id)
            result = apply_transition(
                kind,
                entity_id,
                snapshot,
                actor,
                to,
                reason,
                employer_notes=employer_notes,
            )
            try:
                await self.repository.commit_transition(result)
            except StaleSnapshotError:
                if attempt >= self.stale_retry_attempts:
                    raise
                attempt += 1
                logger.info(
                    "stale snapshot kind=%s id=%s; retrying with fresh read attempt=%s",
                    kind.value,
                    entity_id,
                    attempt,
                )
                continue

            logger.info(
                "transition committed kind=%s id=%s from=%s to=%s actor_role=%s intents=%s",
                kind.value,
                entity_id,
                result.previous.status.value,
                result.snapshot.status.value,
                actor.role.value,
                len(result.notification_intents),
            )
            return result

    async def resubmit(self, kind: EntityKind, entity_id: str, actor: Actor) -> TransitionResult:
        """Owner edit of a job or company profile: the entity goes back to review."""
        if kind not in RESUBMITTABLE_KINDS:
            raise ValueError(f"{kind.value} cannot be resubmitted")
        return await self.request_transition(kind, entity_id, actor, "pending")

    async def withdraw_application(self, application_id: str, actor: Actor) -> TransitionResult:
        return await self.request_transition(
            EntityKind.APPLICATION,
            application_id,
            actor,
            ApplicationStatus.WITHDRAWN_BY_APPLICANT,
        )

    @staticmethod
    def list_legal_targets(kind: EntityKind, from_status: str | Enum) -> list[str]:
        return [target.value for target in _legal_targets(kind, from_status)]

    @staticmethod
    def explain_denial(
        kind: EntityKind,
        actor_role: Role | str,
        from_status: str | Enum,
        to_status: str | Enum,
    ) -> str | None:
        """Why ``actor_role`` may not make this change, or ``None`` if it may.

        Evaluated with default capabilities: ownership-dependent rules (employer
        pipeline, applicant withdrawal, resubmission) report their denial here.
        """
        if not is_legal_transition(kind, from_status, to_status):
            return str(
                InvalidTransitionError(
                    kind.value,
                    str(getattr(from_status, "value", from_status)),
                    str(getattr(to_status, "value", to_status)),
                )
            )
        decision = authorize(
            actor_role,
            ActorCapabilities(),
            kind,
            parse_status(kind, from_status),
            parse_status(kind, to_status),
        )
        return None if decision.allowed else decision.reason
