from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

LegalDocumentId = Literal["privacyPolicy", "termsOfService"]


class LegalDocumentOut(BaseModel):
    id: LegalDocumentId
    content: str
    updated_at: datetime
    updated_by: str | None = None


class LegalDocumentUpdateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=200_000)


class DerivedRebuildOut(BaseModel):
    counters: int
    worklist_entries: int
