from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field

from lions_minutes.models.base import utc_now


class MeetingStatus(str, Enum):
    RECORDING = "RECORDING"
    PROCESSING_STT = "PROCESSING_STT"
    PROCESSING_LLM = "PROCESSING_LLM"
    READY_FOR_REVIEW = "READY_FOR_REVIEW"
    FINALIZED = "FINALIZED"
    FAILED = "FAILED"


class Meeting(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    title: str = Field(default="Untitled Meeting")
    venue: str = Field(default="")
    date: datetime = Field(default_factory=utc_now, index=True)
    agenda: Optional[str] = None
    folder_id: Optional[int] = Field(default=None, index=True, foreign_key="folder.id")
    audio_url: str = Field(default="")
    audio_storage_id: Optional[str] = None
    status: str = Field(default=MeetingStatus.RECORDING.value, index=True)
    # Bumped on every stage dispatch and claim; stale dispatches carry an old value
    stage_token: int = Field(default=0)
    failure_kind: Optional[str] = None  # set only while FAILED
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
