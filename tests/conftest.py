"""Shared fixtures.

Every test gets its own SQLite file under ``tmp_path`` and an inline event
bus, so a pipeline kicked off by a store mutation has fully run by the time
the call returns. The two external services are replaced by scripted fakes.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from lions_minutes.config import Settings
from lions_minutes.main import create_app
from lions_minutes.models.base import create_db_engine, init_db
from lions_minutes.repositories.meetings import MeetingStore
from lions_minutes.services.events import EventBus
from lions_minutes.services.pipeline import Pipeline


ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}

RESULT_URL = "https://api.gladia.io/v2/pre-recorded/job-1"

DEFAULT_UTTERANCES: List[Dict[str, Any]] = [
    {"speaker": 0, "text": "I call this meeting to order.", "start": 0.0},
    {"speaker": 1, "text": "I move that we fund the eye camp.", "start": 4.5},
    {"speaker": 0, "text": "Seconded by Ben. Motion carried.", "start": 9.0},
]

DEFAULT_MINUTES = json.dumps(
    {
        "minutes": [
            {"item": "1.0", "description": "The President called the meeting to order.", "remark": "Info"},
            {"item": "2.0", "description": "Motion to fund the eye camp was carried.", "remark": "Action By: Ben"},
        ]
    }
)


def done_payload(utterances: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {
        "status": "done",
        "result": {"transcription": {"utterances": DEFAULT_UTTERANCES if utterances is None else utterances}},
    }


class FakeSpeechToText:
    """Replays ``script`` one poll at a time; the last entry repeats."""

    def __init__(self) -> None:
        self.script: List[Dict[str, Any]] = [{"status": "queued"}, {"status": "processing"}, done_payload()]
        self.submitted: List[str] = []
        self.polls = 0
        self.probe_error: Optional[Exception] = None

    def submit(self, audio_url: str) -> str:
        self.submitted.append(audio_url)
        return RESULT_URL

    def fetch(self, result_url: str) -> Dict[str, Any]:
        self.polls += 1
        if len(self.script) > 1:
            return self.script.pop(0)
        return self.script[0]

    def probe(self) -> None:
        if self.probe_error is not None:
            raise self.probe_error


class FakeChat:
    def __init__(self) -> None:
        self.content: Any = DEFAULT_MINUTES
        self.calls: List[Dict[str, Any]] = []
        self.probe_error: Optional[Exception] = None

    def complete_json(self, system: str, user: str, temperature: float) -> str:
        self.calls.append({"system": system, "user": user, "temperature": temperature})
        if isinstance(self.content, Exception):
            raise self.content
        return self.content

    def probe(self, model: Optional[str] = None) -> None:
        if self.probe_error is not None:
            raise self.probe_error


@pytest.fixture
def settings(tmp_path) -> Settings:
    s = Settings(
        appdata_dir=tmp_path,
        data_dir=tmp_path / "data",
        audio_dir=tmp_path / "audio",
        logs_dir=tmp_path / "logs",
        database_path=tmp_path / "data" / "test.db",
        public_base_url="http://testserver",
        gladia_api_key="test-gladia-key",
        groq_api_key="test-groq-key",
        stt_poll_interval_seconds=0.0,
        template_path=tmp_path / "no-template.docx",
    )
    s.ensure_dirs()
    return s


@pytest.fixture
def engine(settings):
    eng = create_db_engine(settings.database_path)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def stt() -> FakeSpeechToText:
    return FakeSpeechToText()


@pytest.fixture
def llm() -> FakeChat:
    return FakeChat()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def pipeline(settings, engine, bus, stt, llm) -> Pipeline:
    p = Pipeline(
        settings=settings,
        session_factory=lambda: Session(engine),
        bus=bus,
        stt_client_factory=lambda _: stt,
        llm_client_factory=lambda _: llm,
        sleep=lambda _: None,
    )
    p.register()
    return p


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def store(session, pipeline) -> MeetingStore:
    return MeetingStore(session, pipeline.bus)


@pytest.fixture
def app(settings, engine, stt, llm):
    application = create_app(
        settings=settings,
        engine=engine,
        bus=EventBus(),
        stt_client_factory=lambda _: stt,
        llm_client_factory=lambda _: llm,
    )
    application.state.pipeline.sleep = lambda _: None
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
