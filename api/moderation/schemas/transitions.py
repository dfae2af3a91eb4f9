from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

EntityKindName = Literal["job", "company", "user", "application"]


class TransitionRequest(BaseModel):
    entity_kind: EntityKindName
    entity_id: str = Field(min_length=1)
    to_status: str = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=2000)
    employer_notes: str | None = Field(default=None, max_length=5000)


class StatusPatchRequest(BaseModel):
    status: str = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=2000)


class ApplicationStatusPatchRequest(BaseModel):
    status: str = Field(min_length=1)
    employer_notes: str | None = Field(default=None, max_length=5000)
    reason: str | None = Field(default=None, max_length=2000)


class NotificationIntentOut(BaseModel):
    kind: str
    entity_kind: str
    entity_id: str
    recipient_ids: list[str] = Field(default_factory=list)
    status: str
    message: str
    dedupe_key: str


class AuditEntryOut(BaseModel):
    entity_kind: str
    entity_id: str
    from_status: str
    to_status: str
    reason: str | None = None
    actor_role: str
    actor_id: str | None = None
    timestamp: datetime


class TransitionOut(BaseModel):
    entity_kind: EntityKindName
    entity_id: str
    from_status: str
    to_status: str
    affirmed: bool = False
    updated_at: datetime
    moderation_reason: str | None = None
    flags: list[str] = Field(default_factory=list)
    notification_intents: list[NotificationIntentOut] = Field(default_factory=list)
    audit_entry: AuditEntryOut | None = None


class LegalTargetsOut(BaseModel):
    entity_kind: EntityKindName
    from_status: str
    targets: list[str] = Field(default_factory=list)


class DenialExplanationOut(BaseModel):
    entity_kind: EntityKindName
    actor_role: str
    from_status: str
    to_status: str
    allowed: bool
    reason: str | None = None
