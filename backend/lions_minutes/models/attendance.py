from __future__ import annotations

from sqlmodel import SQLModel, Field


class Attendance(SQLModel, table=True):
    meeting_id: int = Field(primary_key=True, foreign_key="meeting.id")
    member_id: int = Field(primary_key=True, foreign_key="member.id")
