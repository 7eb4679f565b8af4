"""Audio intake: bind an uploaded recording to a meeting and start the pipeline."""

from __future__ import annotations

import logging
from typing import Optional

from lions_minutes.errors import AuthorizationError, NotFoundError
from lions_minutes.models.meeting import Meeting
from lions_minutes.repositories.meetings import MeetingStore
from lions_minutes.services.blob_storage import BlobStorage

logger = logging.getLogger("lions_minutes.intake")


def attach_audio(
    store: MeetingStore,
    blobs: BlobStorage,
    meeting_id: int,
    user_id: str,
    storage_id: str,
) -> Meeting:
    """Resolve the blob's durable URL and move the meeting to transcription.

    Nothing on the meeting changes unless the URL resolves, so a failed
    intake leaves the meeting where it was and the user can retry.
    """
    meeting = store.require_owned(meeting_id, user_id)
    previous_storage_id = meeting.audio_storage_id

    blob = blobs.get(storage_id)
    if blob is None:
        raise NotFoundError("Failed to get download URL")
    if blob.user_id != user_id:
        raise AuthorizationError("Unauthorized to use this upload")
    url = blobs.get_url(storage_id)
    if not url:
        raise NotFoundError("Failed to get download URL")

    meeting = store.attach_audio(meeting_id, user_id, url, storage_id)
    logger.info("Meeting %s queued for transcription from %s", meeting_id, url)

    if previous_storage_id and previous_storage_id != storage_id:
        blobs.delete(previous_storage_id)
    return meeting


def upload_and_attach(
    store: MeetingStore,
    blobs: BlobStorage,
    meeting_id: int,
    user_id: str,
    data: bytes,
    content_type: Optional[str],
) -> Meeting:
    """One-shot path used by the recorder: reserve, upload, attach."""
    store.require_owned(meeting_id, user_id)
    storage_id, _ = blobs.generate_upload_url(user_id)
    try:
        blobs.upload(storage_id, user_id, data, content_type)
    except Exception:
        blobs.delete(storage_id)
        raise
    try:
        return attach_audio(store, blobs, meeting_id, user_id, storage_id)
    except Exception:
        current = store.get(meeting_id)
        if current is None or current.audio_storage_id != storage_id:
            blobs.delete(storage_id)
        raise
