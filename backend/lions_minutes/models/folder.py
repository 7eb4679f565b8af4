from __future__ import annotations

from typing import Optional
from sqlmodel import SQLModel, Field


class Folder(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str  # e.g. "2025 Meetings", "Board Meetings"
    user_id: str = Field(index=True)
