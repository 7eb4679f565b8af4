from __future__ import annotations

from typing import Iterator, Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlmodel import Session

from lions_minutes.config import Settings
from lions_minutes.repositories.meetings import MeetingStore
from lions_minutes.services.blob_storage import BlobStorage
from lions_minutes.services.pipeline import Pipeline


def get_session(request: Request) -> Iterator[Session]:
    with Session(request.app.state.engine) as session:
        yield session


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    # Identity comes from the auth proxy in front of the backend
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthenticated call to protected function")
    return x_user_id.strip()


def get_store(session: Session = Depends(get_session), pipeline: Pipeline = Depends(get_pipeline)) -> MeetingStore:
    return MeetingStore(session, pipeline.bus)


def get_blob_storage(session: Session = Depends(get_session), settings: Settings = Depends(get_settings)) -> BlobStorage:
    return BlobStorage(session, settings.audio_dir, settings.public_base_url)
