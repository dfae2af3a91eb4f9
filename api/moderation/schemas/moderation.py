from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

WorklistName = Literal["pending_jobs", "pending_companies"]


class WorklistEntryOut(BaseModel):
    worklist: WorklistName
    entity_id: str
    added_at: datetime | None = None


class ModerationEventOut(BaseModel):
    id: int
    entity_type: str
    entity_id: str | None = None
    event_type: str
    actor_type: str
    actor_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class CountersOut(BaseModel):
    owner_id: str
    counters: dict[str, int] = Field(default_factory=dict)
