from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field

from lions_minutes.models.base import utc_now


class StoredBlob(SQLModel, table=True):
    id: str = Field(primary_key=True)  # uuid4 hex, doubles as the unguessable URL key
    user_id: str = Field(index=True)
    path: Optional[str] = None
    content_type: str = Field(default="application/octet-stream")
    bytes: int = 0
    uploaded: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)
