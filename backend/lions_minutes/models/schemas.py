from __future__ import annotations

from pydantic import BaseModel, Field


class Utterance(BaseModel):
    """One speaker turn in a diarized transcript."""

    speaker: str
    text: str
    start_seconds: float = 0.0


class MinuteItemData(BaseModel):
    """One line of the minutes: ordinal label, wording and who acts on it."""

    item: str
    description: str
    remark: str = Field(default="Info")
