from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlmodel import Session

from lions_minutes.config import Settings
from lions_minutes.deps import get_blob_storage, get_current_user, get_session, get_settings, get_store
from lions_minutes.models.meeting import Meeting
from lions_minutes.models.schemas import MinuteItemData, Utterance
from lions_minutes.repositories.meetings import MeetingStore
from lions_minutes.repositories.members import MembersRepository
from lions_minutes.services.blob_storage import BlobStorage
from lions_minutes.services.export_service import export_minutes
from lions_minutes.services.intake_service import attach_audio, upload_and_attach
import logging
logger = logging.getLogger("lions_minutes.api")


router = APIRouter(prefix="/meetings", tags=["meetings"])


class CreateMeetingRequest(BaseModel):
    title: str
    venue: str
    date: Optional[datetime] = None
    agenda: Optional[str] = None
    folder_id: Optional[int] = None


class UpdateMeetingRequest(BaseModel):
    title: Optional[str] = None
    venue: Optional[str] = None
    date: Optional[datetime] = None
    agenda: Optional[str] = None
    folder_id: Optional[int] = None
    attendance: Optional[List[int]] = None


class AttachAudioRequest(BaseModel):
    storage_id: str


class UpdateMinutesRequest(BaseModel):
    minutes: List[MinuteItemData]


class MeetingSummary(BaseModel):
    id: int
    title: str
    venue: str
    date: datetime
    folder_id: Optional[int] = None
    status: str


class MeetingView(MeetingSummary):
    agenda: Optional[str] = None
    audio_url: str
    failure_kind: Optional[str] = None
    raw_transcript: List[Utterance]
    final_minutes: Optional[List[MinuteItemData]] = None
    attendance: List[int]
    created_at: datetime
    updated_at: datetime


class ExportResponse(BaseModel):
    filename: str
    mime_type: str
    content_base64: str
    rendered_with: str


def _summary(meeting: Meeting) -> MeetingSummary:
    return MeetingSummary(
        id=meeting.id,  # type: ignore[arg-type]
        title=meeting.title,
        venue=meeting.venue,
        date=meeting.date,
        folder_id=meeting.folder_id,
        status=meeting.status,
    )


def _view(store: MeetingStore, meeting: Meeting) -> MeetingView:
    # Inline pipelines may have moved the meeting on since it was loaded
    store.session.refresh(meeting)
    meeting_id: int = meeting.id  # type: ignore[assignment]
    return MeetingView(
        **_summary(meeting).dict(),
        agenda=meeting.agenda,
        audio_url=meeting.audio_url,
        failure_kind=meeting.failure_kind,
        raw_transcript=store.get_transcript(meeting_id),
        final_minutes=store.get_minutes(meeting),
        attendance=store.get_attendance(meeting_id),
        created_at=meeting.created_at,
        updated_at=meeting.updated_at,
    )


@router.post("", status_code=201)
def create_meeting(
    body: CreateMeetingRequest,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
) -> MeetingView:
    meeting = store.create(
        user_id,
        title=body.title,
        venue=body.venue,
        date=body.date,
        agenda=body.agenda,
        folder_id=body.folder_id,
    )
    logger.info("Created meeting %s for %s", meeting.id, user_id)
    return _view(store, meeting)


@router.get("")
def list_meetings(
    folder_id: Optional[int] = None,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
) -> List[MeetingSummary]:
    return [_summary(m) for m in store.list_for_user(user_id, folder_id=folder_id)]


@router.get("/{meeting_id}")
def get_meeting_detail(
    meeting_id: int,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
) -> MeetingView:
    meeting = store.get_for_user(meeting_id, user_id)
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return _view(store, meeting)


@router.put("/{meeting_id}")
def update_meeting(
    meeting_id: int,
    body: UpdateMeetingRequest,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
) -> MeetingView:
    fields: Dict[str, Any] = body.dict(exclude_unset=True)
    attendance = fields.pop("attendance", None)
    # Only agenda and folder may be cleared explicitly
    for key in ("title", "venue", "date"):
        if fields.get(key) is None:
            fields.pop(key, None)
    meeting = store.update_details(meeting_id, user_id, attendance=attendance, **fields)
    return _view(store, meeting)


@router.delete("/{meeting_id}")
def delete_meeting(
    meeting_id: int,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
    blobs: BlobStorage = Depends(get_blob_storage),
) -> Dict[str, bool]:
    storage_id = store.delete(meeting_id, user_id)
    if storage_id:
        blobs.delete(storage_id)
    logger.info("Deleted meeting %s", meeting_id)
    return {"ok": True}


@router.post("/{meeting_id}/audio", status_code=202)
def attach_meeting_audio(
    meeting_id: int,
    body: AttachAudioRequest,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
    blobs: BlobStorage = Depends(get_blob_storage),
) -> MeetingView:
    meeting = attach_audio(store, blobs, meeting_id, user_id, body.storage_id)
    return _view(store, meeting)


@router.post("/{meeting_id}/audio/file", status_code=202)
async def upload_meeting_audio(
    meeting_id: int,
    request: Request,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
    blobs: BlobStorage = Depends(get_blob_storage),
) -> MeetingView:
    data = await request.body()
    meeting = await run_in_threadpool(
        upload_and_attach, store, blobs, meeting_id, user_id, data, request.headers.get("content-type")
    )
    return await run_in_threadpool(_view, store, meeting)


@router.post("/{meeting_id}/minutes/generate", status_code=202)
def regenerate_minutes(
    meeting_id: int,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
) -> MeetingView:
    meeting = store.request_minutes(meeting_id, user_id)
    return _view(store, meeting)


@router.put("/{meeting_id}/minutes")
def update_minutes(
    meeting_id: int,
    body: UpdateMinutesRequest,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
) -> MeetingView:
    meeting = store.replace_minutes(meeting_id, user_id, body.minutes)
    return _view(store, meeting)


@router.post("/{meeting_id}/finalize")
def finalize_meeting(
    meeting_id: int,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
) -> MeetingView:
    meeting = store.finalize(meeting_id, user_id)
    return _view(store, meeting)


@router.post("/{meeting_id}/export")
def export_meeting(
    meeting_id: int,
    user_id: str = Depends(get_current_user),
    store: MeetingStore = Depends(get_store),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> ExportResponse:
    meeting = store.get_for_user(meeting_id, user_id)
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")
    result = export_minutes(
        title=meeting.title,
        venue=meeting.venue,
        meeting_date=meeting.date,
        minutes=store.get_minutes(meeting),
        members=MembersRepository(session).list(),
        attendance=store.get_attendance(meeting_id),
        template_path=settings.resolved_template_path,
    )
    logger.info("Exported meeting %s (%s)", meeting_id, result.rendered_with)
    return ExportResponse(
        filename=result.filename,
        mime_type=result.mime_type,
        content_base64=result.content_base64,
        rendered_with=result.rendered_with,
    )
