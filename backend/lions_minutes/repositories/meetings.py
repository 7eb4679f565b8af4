"""The Meeting State Store: the only read/write path for meeting documents.

Reads return ``None`` for missing or foreign meetings so callers can render a
plain "not found". Mutations check ownership, validate the status transition
and commit once; any follow-up stage is announced on the event bus only after
that commit.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Sequence
import logging

from sqlalchemy import update
from sqlmodel import Session, select

from lions_minutes.errors import (
    AuthorizationError,
    FailureKind,
    InvalidTransitionError,
    NotFoundError,
)
from lions_minutes.models.attendance import Attendance
from lions_minutes.models.base import ensure_utc, utc_now
from lions_minutes.models.meeting import Meeting, MeetingStatus
from lions_minutes.models.schemas import MinuteItemData, Utterance
from lions_minutes.repositories.folders import FoldersRepository
from lions_minutes.repositories.members import MembersRepository
from lions_minutes.repositories.minute_items import MinuteItemsRepository
from lions_minutes.repositories.transcripts import TranscriptsRepository
from lions_minutes.services.events import EventBus, PipelineEvent, StageEvent
from lions_minutes.services.lifecycle import ensure_transition, has_minutes

logger = logging.getLogger("lions_minutes.store")


_DETAIL_FIELDS = ("title", "venue", "date", "agenda", "folder_id")


class MeetingStore:
    def __init__(self, session: Session, bus: Optional[EventBus] = None) -> None:
        self.session = session
        self.bus = bus
        self.transcripts = TranscriptsRepository(session)
        self.minutes = MinuteItemsRepository(session)

    # --- reads ---

    def get(self, meeting_id: int) -> Optional[Meeting]:
        # Reload: stages commit from their own sessions
        return self.session.get(Meeting, meeting_id, populate_existing=True)

    def get_for_user(self, meeting_id: int, user_id: str) -> Optional[Meeting]:
        meeting = self.get(meeting_id)
        if meeting is None or meeting.user_id != user_id:
            return None
        return meeting

    def list_for_user(self, user_id: str, folder_id: Optional[int] = None) -> list[Meeting]:
        statement = select(Meeting).where(Meeting.user_id == user_id)
        if folder_id is not None:
            statement = statement.where(Meeting.folder_id == folder_id)
        statement = statement.order_by(Meeting.date.desc())
        return list(self.session.exec(statement))

    def get_transcript(self, meeting_id: int) -> list[Utterance]:
        return self.transcripts.utterances_for_meeting(meeting_id)

    def get_minutes(self, meeting: Meeting) -> Optional[list[MinuteItemData]]:
        """Minute items, or ``None`` while the meeting has not reached review."""
        if not has_minutes(meeting.status):
            return None
        return self.minutes.items_for_meeting(meeting.id)  # type: ignore[arg-type]

    def get_attendance(self, meeting_id: int) -> list[int]:
        statement = select(Attendance).where(Attendance.meeting_id == meeting_id)
        return sorted(link.member_id for link in self.session.exec(statement))

    # --- owner mutations ---

    def require_owned(self, meeting_id: int, user_id: str) -> Meeting:
        meeting = self.get(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting not found")
        if meeting.user_id != user_id:
            raise AuthorizationError("Unauthorized")
        return meeting

    def create(
        self,
        user_id: str,
        title: str,
        venue: str,
        date: Optional[datetime] = None,
        agenda: Optional[str] = None,
        folder_id: Optional[int] = None,
    ) -> Meeting:
        if folder_id is not None:
            FoldersRepository(self.session).require_owned(folder_id, user_id)
        meeting = Meeting(
            user_id=user_id,
            title=title,
            venue=venue,
            agenda=agenda,
            folder_id=folder_id,
            status=MeetingStatus.RECORDING.value,
        )
        if date is not None:
            meeting.date = ensure_utc(date)
        self.session.add(meeting)
        self.session.commit()
        self.session.refresh(meeting)
        return meeting

    def update_details(
        self,
        meeting_id: int,
        user_id: str,
        attendance: Optional[Sequence[int]] = None,
        **fields: object,
    ) -> Meeting:
        """Patch descriptive fields and attendance. Status is never touched here."""
        meeting = self.require_owned(meeting_id, user_id)
        unknown = set(fields) - set(_DETAIL_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported meeting fields: {sorted(unknown)}")
        folder_id = fields.get("folder_id")
        if folder_id is not None:
            FoldersRepository(self.session).require_owned(int(folder_id), user_id)  # type: ignore[arg-type]
        if isinstance(fields.get("date"), datetime):
            fields["date"] = ensure_utc(fields["date"])  # type: ignore[arg-type]
        for key, value in fields.items():
            setattr(meeting, key, value)
        if attendance is not None:
            self._replace_attendance(meeting_id, attendance)
        return self._commit(meeting)

    def delete(self, meeting_id: int, user_id: str) -> Optional[str]:
        """Delete the meeting and its rows; returns the audio blob id for cleanup."""
        meeting = self.require_owned(meeting_id, user_id)
        storage_id = meeting.audio_storage_id
        self.transcripts.delete_for_meeting(meeting_id)
        self.minutes.delete_for_meeting(meeting_id)
        self._replace_attendance(meeting_id, [])
        self.session.delete(meeting)
        self.session.commit()
        return storage_id

    def attach_audio(self, meeting_id: int, user_id: str, audio_url: str, storage_id: Optional[str]) -> Meeting:
        """Record the uploaded audio and hand the meeting to transcription."""
        meeting = self.require_owned(meeting_id, user_id)
        ensure_transition(meeting.status, MeetingStatus.PROCESSING_STT)
        # A re-upload after a failure starts over from an empty transcript
        self.transcripts.delete_for_meeting(meeting_id)
        self.minutes.delete_for_meeting(meeting_id)
        meeting.audio_url = audio_url
        meeting.audio_storage_id = storage_id
        meeting.status = MeetingStatus.PROCESSING_STT.value
        meeting.failure_kind = None
        meeting.stage_token += 1
        meeting = self._commit(meeting)
        self._publish(PipelineEvent.AUDIO_READY, meeting, audio_url=audio_url)
        return meeting

    def request_minutes(self, meeting_id: int, user_id: str) -> Meeting:
        """Restart minutes generation for a meeting that failed after transcription."""
        meeting = self.require_owned(meeting_id, user_id)
        ensure_transition(meeting.status, MeetingStatus.PROCESSING_LLM)
        if self.transcripts.count_for_meeting(meeting_id) == 0:
            raise NotFoundError("Meeting or transcript not found")
        meeting.status = MeetingStatus.PROCESSING_LLM.value
        meeting.failure_kind = None
        meeting.stage_token += 1
        meeting = self._commit(meeting)
        self._publish(PipelineEvent.TRANSCRIPT_READY, meeting)
        return meeting

    def replace_minutes(self, meeting_id: int, user_id: str, items: Iterable[MinuteItemData]) -> Meeting:
        """Human edits during review; the status stays READY_FOR_REVIEW."""
        meeting = self.require_owned(meeting_id, user_id)
        if meeting.status != MeetingStatus.READY_FOR_REVIEW.value:
            raise InvalidTransitionError(
                f"Minutes can only be edited while ready for review (status is {meeting.status})"
            )
        self.minutes.replace_for_meeting(meeting_id, items)
        return self._commit(meeting)

    def finalize(self, meeting_id: int, user_id: str) -> Meeting:
        meeting = self.require_owned(meeting_id, user_id)
        ensure_transition(meeting.status, MeetingStatus.FINALIZED)
        meeting.status = MeetingStatus.FINALIZED.value
        return self._commit(meeting)

    # --- pipeline stage writes ---

    def claim_stage(self, meeting_id: int, expected: MeetingStatus, token: int) -> Optional[int]:
        """Atomically take ownership of a dispatched stage.

        Returns the new token the stage must present on its writes, or
        ``None`` when the dispatch is stale (token moved on or status changed).
        """
        statement = (
            update(Meeting)
            .where(
                Meeting.id == meeting_id,
                Meeting.stage_token == token,
                Meeting.status == expected.value,
            )
            .values(stage_token=token + 1, updated_at=utc_now())
        )
        result = self.session.exec(statement)  # type: ignore[call-overload]
        self.session.commit()
        if result.rowcount != 1:
            logger.info(
                "Ignoring stale %s dispatch for meeting %s (token %s)",
                expected.value,
                meeting_id,
                token,
            )
            return None
        return token + 1

    def save_transcript(
        self, meeting_id: int, user_id: str, token: int, utterances: Sequence[Utterance]
    ) -> bool:
        meeting = self._load_current(meeting_id, user_id, token)
        if meeting is None:
            return False
        ensure_transition(meeting.status, MeetingStatus.PROCESSING_LLM)
        count = self.transcripts.replace_for_meeting(meeting_id, utterances)
        meeting.status = MeetingStatus.PROCESSING_LLM.value
        meeting.stage_token += 1
        meeting = self._commit(meeting)
        logger.info("Saved %d utterances for meeting %s", count, meeting_id)
        self._publish(PipelineEvent.TRANSCRIPT_READY, meeting)
        return True

    def save_generated_minutes(
        self, meeting_id: int, user_id: str, token: int, items: Sequence[MinuteItemData]
    ) -> bool:
        meeting = self._load_current(meeting_id, user_id, token)
        if meeting is None:
            return False
        ensure_transition(meeting.status, MeetingStatus.READY_FOR_REVIEW)
        self.minutes.replace_for_meeting(meeting_id, items)
        meeting.status = MeetingStatus.READY_FOR_REVIEW.value
        meeting.stage_token += 1
        meeting = self._commit(meeting)
        logger.info("Saved %d minute items for meeting %s", len(items), meeting_id)
        self._publish(PipelineEvent.MINUTES_READY, meeting)
        return True

    def mark_failed(self, meeting_id: int, user_id: str, token: int, kind: FailureKind) -> bool:
        """Freeze the meeting at FAILED; artifacts already committed are kept."""
        meeting = self._load_current(meeting_id, user_id, token)
        if meeting is None:
            return False
        ensure_transition(meeting.status, MeetingStatus.FAILED)
        meeting.status = MeetingStatus.FAILED.value
        meeting.failure_kind = kind.value
        meeting.stage_token += 1
        meeting = self._commit(meeting)
        self._publish(PipelineEvent.STAGE_FAILED, meeting, failure_kind=kind.value)
        return True

    # --- internals ---

    def _load_current(self, meeting_id: int, user_id: str, token: int) -> Optional[Meeting]:
        meeting = self.require_owned(meeting_id, user_id)
        if meeting.stage_token != token:
            logger.warning(
                "Discarding superseded stage result for meeting %s (token %s, current %s)",
                meeting_id,
                token,
                meeting.stage_token,
            )
            return None
        return meeting

    def _replace_attendance(self, meeting_id: int, member_ids: Sequence[int]) -> None:
        wanted = list(dict.fromkeys(member_ids))
        missing = MembersRepository(self.session).missing_ids(wanted)
        if missing:
            raise NotFoundError(f"Unknown member ids: {missing}")
        existing = list(self.session.exec(select(Attendance).where(Attendance.meeting_id == meeting_id)))
        kept = set()
        for link in existing:
            if link.member_id in wanted:
                kept.add(link.member_id)
            else:
                self.session.delete(link)
        for member_id in wanted:
            if member_id not in kept:
                self.session.add(Attendance(meeting_id=meeting_id, member_id=member_id))

    def _commit(self, meeting: Meeting) -> Meeting:
        meeting.updated_at = utc_now()
        self.session.add(meeting)
        self.session.commit()
        self.session.refresh(meeting)
        return meeting

    def _publish(self, kind: PipelineEvent, meeting: Meeting, **extra: Optional[str]) -> None:
        if self.bus is None:
            return
        self.bus.publish(
            StageEvent(
                kind=kind,
                meeting_id=meeting.id,  # type: ignore[arg-type]
                user_id=meeting.user_id,
                stage_token=meeting.stage_token,
                **extra,
            )
        )
