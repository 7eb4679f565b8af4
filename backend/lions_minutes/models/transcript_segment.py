from __future__ import annotations

from typing import Optional
from sqlmodel import SQLModel, Field


class TranscriptSegment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    meeting_id: int = Field(index=True, foreign_key="meeting.id")
    position: int = Field(index=True)
    speaker: str  # "Speaker 1" | "Speaker ?"
    text: str
    start_seconds: float = 0.0
