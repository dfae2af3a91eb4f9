from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class OutboxEntryOut(BaseModel):
    id: int
    dedupe_key: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    dispatched_at: datetime | None = None
