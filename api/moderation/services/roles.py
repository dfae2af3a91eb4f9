from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    JOB_SEEKER = "jobSeeker"
    EMPLOYER = "employer"
    ADMIN = "admin"
    SUPER_ADMIN = "superAdmin"
    MODERATOR = "moderator"
    SUPPORT_AGENT = "supportAgent"
    DATA_ANALYST = "dataAnalyst"
    COMPLIANCE_OFFICER = "complianceOfficer"
    SYSTEM_MONITOR = "systemMonitor"


# Read-visibility group only; write capability is decided per entity by the guard.
ADMIN_LIKE_ROLES: frozenset[Role] = frozenset(
    {
        Role.ADMIN,
        Role.SUPER_ADMIN,
        Role.MODERATOR,
        Role.SUPPORT_AGENT,
        Role.DATA_ANALYST,
        Role.COMPLIANCE_OFFICER,
        Role.SYSTEM_MONITOR,
    }
)

PRIVILEGED_ACCOUNT_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.SUPER_ADMIN})

# Scopes gate read endpoints only. Status writes are decided by the guard.
ROLE_SCOPES: dict[Role, set[str]] = {
    Role.JOB_SEEKER: set(),
    Role.EMPLOYER: set(),
    **{role: {"moderation:read"} for role in ADMIN_LIKE_ROLES},
}


def parse_role(value: object, *, default: Role = Role.JOB_SEEKER) -> Role:
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        try:
            return Role(value)
        except ValueError:
            return default
    return default


def is_admin_like(role: Role) -> bool:
    return role in ADMIN_LIKE_ROLES


@dataclass(slots=True, frozen=True)
class ActorCapabilities:
    """Per-actor facts the guard consults beyond the role itself."""

    uid: str | None = None
    is_company_admin: bool = False
    company_id: str | None = None
    company_status: str | None = None
    account_status: str = "active"

    @property
    def company_restricted(self) -> bool:
        return self.company_status in {"suspended", "deleted"}

    @property
    def account_suspended(self) -> bool:
        return self.account_status in {"suspended", "deleted"}


@dataclass(slots=True, frozen=True)
class Actor:
    role: Role
    capabilities: ActorCapabilities = ActorCapabilities()

    @property
    def uid(self) -> str | None:
        return self.capabilities.uid
