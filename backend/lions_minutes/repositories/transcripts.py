from __future__ import annotations

from typing import Iterable
from sqlmodel import Session, select

from lions_minutes.models.schemas import Utterance
from lions_minutes.models.transcript_segment import TranscriptSegment


class TranscriptsRepository:
    """Transcript rows for a meeting. Writes are staged; MeetingStore commits."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def replace_for_meeting(self, meeting_id: int, utterances: Iterable[Utterance]) -> int:
        self.delete_for_meeting(meeting_id)
        count = 0
        for position, utt in enumerate(utterances):
            self.session.add(
                TranscriptSegment(
                    meeting_id=meeting_id,
                    position=position,
                    speaker=utt.speaker,
                    text=utt.text,
                    start_seconds=utt.start_seconds,
                )
            )
            count += 1
        return count

    def delete_for_meeting(self, meeting_id: int) -> int:
        to_delete = self.list_by_meeting(meeting_id)
        for seg in to_delete:
            self.session.delete(seg)
        return len(to_delete)

    def list_by_meeting(self, meeting_id: int) -> list[TranscriptSegment]:
        statement = (
            select(TranscriptSegment)
            .where(TranscriptSegment.meeting_id == meeting_id)
            .order_by(TranscriptSegment.position.asc())
        )
        return list(self.session.exec(statement))

    def utterances_for_meeting(self, meeting_id: int) -> list[Utterance]:
        return [
            Utterance(speaker=seg.speaker, text=seg.text, start_seconds=seg.start_seconds)
            for seg in self.list_by_meeting(meeting_id)
        ]

    def count_for_meeting(self, meeting_id: int) -> int:
        return len(self.list_by_meeting(meeting_id))
