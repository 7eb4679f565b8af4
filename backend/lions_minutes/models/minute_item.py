from __future__ import annotations

from typing import Optional
from sqlmodel import SQLModel, Field


class MinuteItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    meeting_id: int = Field(index=True, foreign_key="meeting.id")
    position: int
    item: str  # ordinal label, e.g. "1.0"
    description: str
    remark: str = Field(default="Info")  # assignee name or "Info"
