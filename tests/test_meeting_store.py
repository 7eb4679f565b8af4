"""Tests for the meeting state store: ownership, transitions, stage tokens."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import Session

from lions_minutes.errors import (
    AuthorizationError,
    FailureKind,
    InvalidTransitionError,
    NotFoundError,
)
from lions_minutes.models.base import ensure_utc, utc_now
from lions_minutes.models.folder import Folder
from lions_minutes.models.member import Member
from lions_minutes.models.meeting import Meeting, MeetingStatus
from lions_minutes.models.schemas import MinuteItemData, Utterance
from lions_minutes.repositories.folders import FoldersRepository
from lions_minutes.repositories.meetings import MeetingStore
from lions_minutes.repositories.members import MembersRepository
from lions_minutes.services.events import EventBus, PipelineEvent


UTTERANCES = [
    Utterance(speaker="Speaker 0", text="Welcome everyone.", start_seconds=0.0),
    Utterance(speaker="Speaker 1", text="Thank you, President.", start_seconds=2.0),
]


@pytest.fixture
def quiet_store(session):
    """A store whose events go to a recording bus with no stages attached."""
    bus = EventBus()
    events = []
    for kind in PipelineEvent:
        bus.subscribe(kind, events.append)
    s = MeetingStore(session, bus)
    s.events = events
    return s


def _new_meeting(store, user_id="alice", **kwargs):
    return store.create(user_id, title=kwargs.pop("title", "Board Meeting"), venue="Clubhouse", **kwargs)


class TestOwnership:
    def test_get_for_user_hides_foreign_meetings(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        assert quiet_store.get_for_user(meeting.id, "alice") is not None
        assert quiet_store.get_for_user(meeting.id, "bob") is None
        assert quiet_store.get_for_user(9999, "alice") is None

    def test_mutation_by_other_user_leaves_meeting_untouched(self, store, session):
        ann = MembersRepository(session).create(Member(name="Ann", role="President"))
        meeting = _new_meeting(store, agenda="1. Opening")
        store.update_details(meeting.id, "alice", attendance=[ann.id])
        store.attach_audio(meeting.id, "alice", "http://x/a.webm", "blob-1")

        def snapshot():
            current = store.get(meeting.id)
            return (
                current.model_dump(),
                store.get_transcript(meeting.id),
                store.get_minutes(current),
                store.get_attendance(meeting.id),
            )

        before = snapshot()
        assert before[0]["status"] == MeetingStatus.READY_FOR_REVIEW.value
        edited = [MinuteItemData(item="1.0", description="Hijacked.")]
        attempts = [
            lambda: store.update_details(meeting.id, "bob", title="Hijacked", attendance=[]),
            lambda: store.attach_audio(meeting.id, "bob", "http://x/b.webm", None),
            lambda: store.replace_minutes(meeting.id, "bob", edited),
            lambda: store.request_minutes(meeting.id, "bob"),
            lambda: store.finalize(meeting.id, "bob"),
            lambda: store.delete(meeting.id, "bob"),
        ]
        for attempt in attempts:
            with pytest.raises(AuthorizationError):
                attempt()
            assert snapshot() == before

    def test_missing_meeting_is_not_found(self, quiet_store):
        with pytest.raises(NotFoundError):
            quiet_store.finalize(42, "alice")

    def test_list_is_owner_scoped_and_filterable(self, quiet_store, session):
        folder = FoldersRepository(session).create(Folder(name="Board", user_id="alice"))
        in_folder = _new_meeting(quiet_store, folder_id=folder.id)
        _new_meeting(quiet_store, title="Loose")
        _new_meeting(quiet_store, user_id="bob", title="Bob's")

        assert {m.title for m in quiet_store.list_for_user("alice")} == {"Board Meeting", "Loose"}
        assert [m.id for m in quiet_store.list_for_user("alice", folder_id=folder.id)] == [in_folder.id]

    def test_create_in_foreign_folder_is_refused(self, quiet_store, session):
        folder = FoldersRepository(session).create(Folder(name="Bob only", user_id="bob"))
        with pytest.raises(AuthorizationError):
            _new_meeting(quiet_store, folder_id=folder.id)


class TestDetails:
    def test_new_meeting_starts_recording(self, quiet_store):
        meeting = _new_meeting(quiet_store, agenda="1. Opening\n2. Treasurer")
        assert meeting.status == MeetingStatus.RECORDING.value
        assert meeting.agenda == "1. Opening\n2. Treasurer"
        assert quiet_store.get_minutes(meeting) is None

    def test_status_is_not_a_detail_field(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        with pytest.raises(ValueError):
            quiet_store.update_details(meeting.id, "alice", status="FINALIZED")

    def test_attendance_is_replaced_not_appended(self, quiet_store, session):
        members = MembersRepository(session)
        ann = members.create(Member(name="Ann", role="President"))
        ben = members.create(Member(name="Ben", role="Secretary"))
        cat = members.create(Member(name="Cat", role="Treasurer"))
        meeting = _new_meeting(quiet_store)

        quiet_store.update_details(meeting.id, "alice", attendance=[ann.id, ben.id])
        quiet_store.update_details(meeting.id, "alice", attendance=[ben.id, cat.id, ben.id])

        assert quiet_store.get_attendance(meeting.id) == sorted([ben.id, cat.id])

    def test_unknown_member_in_attendance(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        with pytest.raises(NotFoundError):
            quiet_store.update_details(meeting.id, "alice", attendance=[404])

    def test_deleting_member_drops_attendance(self, quiet_store, session):
        members = MembersRepository(session)
        ann = members.create(Member(name="Ann", role="President"))
        meeting = _new_meeting(quiet_store)
        quiet_store.update_details(meeting.id, "alice", attendance=[ann.id])

        assert members.delete(ann.id)
        assert quiet_store.get_attendance(meeting.id) == []

    def test_folder_delete_unlinks_meetings(self, quiet_store, session):
        folders = FoldersRepository(session)
        folder = folders.create(Folder(name="2025", user_id="alice"))
        meeting = _new_meeting(quiet_store, folder_id=folder.id)

        assert folders.delete_for_user(folder.id, "alice") == 1
        session.refresh(meeting)
        assert meeting.folder_id is None
        assert quiet_store.get(meeting.id) is not None

    def test_delete_returns_audio_blob_id(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        quiet_store.attach_audio(meeting.id, "alice", "http://x/a.webm", "blob-1")
        assert quiet_store.delete(meeting.id, "alice") == "blob-1"
        assert quiet_store.get(meeting.id) is None


class TestStageWrites:
    def test_attach_audio_publishes_after_commit(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        meeting = quiet_store.attach_audio(meeting.id, "alice", "http://x/a.webm", "blob-1")

        assert meeting.status == MeetingStatus.PROCESSING_STT.value
        [event] = quiet_store.events
        assert event.kind is PipelineEvent.AUDIO_READY
        assert event.audio_url == "http://x/a.webm"
        assert event.stage_token == meeting.stage_token
        assert event.user_id == "alice"

    def test_attach_audio_twice_is_refused_while_processing(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        quiet_store.attach_audio(meeting.id, "alice", "http://x/a.webm", None)
        with pytest.raises(InvalidTransitionError):
            quiet_store.attach_audio(meeting.id, "alice", "http://x/b.webm", None)

    def test_stale_dispatch_cannot_claim(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        meeting = quiet_store.attach_audio(meeting.id, "alice", "http://x/a.webm", None)
        token = meeting.stage_token

        assert quiet_store.claim_stage(meeting.id, MeetingStatus.PROCESSING_STT, token - 1) is None
        assert quiet_store.claim_stage(meeting.id, MeetingStatus.PROCESSING_LLM, token) is None
        claimed = quiet_store.claim_stage(meeting.id, MeetingStatus.PROCESSING_STT, token)
        assert claimed == token + 1
        # The same dispatch delivered twice only wins once
        assert quiet_store.claim_stage(meeting.id, MeetingStatus.PROCESSING_STT, token) is None

    def test_superseded_result_is_discarded(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        meeting = quiet_store.attach_audio(meeting.id, "alice", "http://x/a.webm", None)
        claimed = quiet_store.claim_stage(meeting.id, MeetingStatus.PROCESSING_STT, meeting.stage_token)

        assert not quiet_store.save_transcript(meeting.id, "alice", claimed - 1, UTTERANCES)
        assert quiet_store.get_transcript(meeting.id) == []

        assert quiet_store.save_transcript(meeting.id, "alice", claimed, UTTERANCES)
        meeting = quiet_store.get(meeting.id)
        assert meeting.status == MeetingStatus.PROCESSING_LLM.value
        assert quiet_store.get_transcript(meeting.id) == UTTERANCES
        assert quiet_store.events[-1].kind is PipelineEvent.TRANSCRIPT_READY

    def test_stage_write_checks_owner(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        meeting = quiet_store.attach_audio(meeting.id, "alice", "http://x/a.webm", None)
        claimed = quiet_store.claim_stage(meeting.id, MeetingStatus.PROCESSING_STT, meeting.stage_token)
        with pytest.raises(AuthorizationError):
            quiet_store.save_transcript(meeting.id, "bob", claimed, UTTERANCES)

    def test_failure_keeps_committed_transcript(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        meeting = quiet_store.attach_audio(meeting.id, "alice", "http://x/a.webm", None)
        token = quiet_store.claim_stage(meeting.id, MeetingStatus.PROCESSING_STT, meeting.stage_token)
        quiet_store.save_transcript(meeting.id, "alice", token, UTTERANCES)
        meeting = quiet_store.get(meeting.id)
        token = quiet_store.claim_stage(meeting.id, MeetingStatus.PROCESSING_LLM, meeting.stage_token)

        assert quiet_store.mark_failed(meeting.id, "alice", token, FailureKind.PARSE_ERROR)
        meeting = quiet_store.get(meeting.id)
        assert meeting.status == MeetingStatus.FAILED.value
        assert meeting.failure_kind == "parse_error"
        assert quiet_store.get_transcript(meeting.id) == UTTERANCES
        assert quiet_store.get_minutes(meeting) is None
        assert quiet_store.events[-1].failure_kind == "parse_error"

    def test_request_minutes_needs_a_transcript(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        meeting = quiet_store.attach_audio(meeting.id, "alice", "http://x/a.webm", None)
        token = quiet_store.claim_stage(meeting.id, MeetingStatus.PROCESSING_STT, meeting.stage_token)
        quiet_store.mark_failed(meeting.id, "alice", token, FailureKind.REMOTE_ERROR)

        with pytest.raises(NotFoundError):
            quiet_store.request_minutes(meeting.id, "alice")

    def test_minutes_edit_only_during_review(self, quiet_store):
        meeting = _new_meeting(quiet_store)
        with pytest.raises(InvalidTransitionError):
            quiet_store.replace_minutes(meeting.id, "alice", [MinuteItemData(item="1.0", description="x")])


class TestFullPipeline:
    def test_audio_runs_through_to_review(self, store, stt, llm):
        meeting = _new_meeting(store, agenda="1. Eye camp")
        store.attach_audio(meeting.id, "alice", "http://testserver/storage/abc", "abc")

        meeting = store.get(meeting.id)
        store.session.refresh(meeting)
        assert meeting.status == MeetingStatus.READY_FOR_REVIEW.value
        assert stt.submitted == ["http://testserver/storage/abc"]
        assert [u.speaker for u in store.get_transcript(meeting.id)] == ["Speaker 0", "Speaker 1", "Speaker 0"]
        minutes = store.get_minutes(meeting)
        assert [m.item for m in minutes] == ["1.0", "2.0"]
        assert minutes[1].remark == "Action By: Ben"
        assert "1. Eye camp" in llm.calls[0]["user"]

    def test_review_edit_then_finalize(self, store):
        meeting = _new_meeting(store)
        store.attach_audio(meeting.id, "alice", "http://x/a.webm", None)

        edited = [MinuteItemData(item="1.0", description="Edited wording.", remark="Info")]
        meeting = store.replace_minutes(meeting.id, "alice", edited)
        assert meeting.status == MeetingStatus.READY_FOR_REVIEW.value
        assert store.get_minutes(meeting) == edited

        meeting = store.finalize(meeting.id, "alice")
        assert meeting.status == MeetingStatus.FINALIZED.value
        assert store.get_minutes(meeting) == edited
        with pytest.raises(InvalidTransitionError):
            store.replace_minutes(meeting.id, "alice", edited)

    def test_store_sees_commits_from_other_sessions(self, quiet_store, engine):
        meeting = _new_meeting(quiet_store)
        assert quiet_store.get(meeting.id).status == MeetingStatus.RECORDING.value

        with Session(engine) as other:
            row = other.get(Meeting, meeting.id)
            row.status = MeetingStatus.READY_FOR_REVIEW.value
            other.add(row)
            other.commit()

        assert quiet_store.finalize(meeting.id, "alice").status == MeetingStatus.FINALIZED.value


class TestTimestamps:
    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is timezone.utc

    def test_ensure_utc(self):
        naive = datetime(2025, 3, 14, 19, 30)
        assert ensure_utc(naive) == datetime(2025, 3, 14, 19, 30, tzinfo=timezone.utc)
        kl = datetime(2025, 3, 14, 19, 30, tzinfo=timezone(timedelta(hours=8)))
        converted = ensure_utc(kl)
        assert converted.tzinfo is timezone.utc
        assert converted.hour == 11

    def test_new_rows_get_aware_timestamps(self, quiet_store):
        meeting = _new_meeting(quiet_store, date=datetime(2025, 3, 14, 19, 30))
        assert meeting.id is not None
        assert meeting.date.replace(tzinfo=None) == datetime(2025, 3, 14, 19, 30)

        updated = quiet_store.update_details(
            meeting.id, "alice", date=datetime(2025, 3, 15, 8, 0, tzinfo=timezone(timedelta(hours=8)))
        )
        assert updated.date.replace(tzinfo=None) == datetime(2025, 3, 15, 0, 0)
