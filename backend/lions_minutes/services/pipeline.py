"""Wires the stage handlers to the events the state store publishes.

AUDIO_READY -> transcription stage -> TRANSCRIPT_READY -> minutes stage.
Stages never call each other; each one only reads and writes the store.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from sqlmodel import Session

from lions_minutes.config import Settings
from lions_minutes.services.events import EventBus, PipelineEvent, StageEvent
from lions_minutes.services.llm_client import GroqChatClient
from lions_minutes.services.minutes_service import ChatClient, run_minutes_stage
from lions_minutes.services.stt_client import GladiaClient
from lions_minutes.services.transcription_service import SpeechToTextClient, run_transcription_stage

logger = logging.getLogger("lions_minutes.pipeline")


@dataclass
class Pipeline:
    settings: Settings
    session_factory: Callable[[], Session]
    bus: EventBus
    stt_client_factory: Callable[[Settings], SpeechToTextClient] = field(default=GladiaClient.from_settings)
    llm_client_factory: Callable[[Settings], ChatClient] = field(default=GroqChatClient.from_settings)
    sleep: Callable[[float], None] = field(default=time.sleep)
    clock: Callable[[], float] = field(default=time.monotonic)

    def register(self) -> None:
        self.bus.subscribe(PipelineEvent.AUDIO_READY, self.on_audio_ready)
        self.bus.subscribe(PipelineEvent.TRANSCRIPT_READY, self.on_transcript_ready)
        self.bus.subscribe(PipelineEvent.MINUTES_READY, self.on_finished)
        self.bus.subscribe(PipelineEvent.STAGE_FAILED, self.on_finished)

    def on_audio_ready(self, event: StageEvent) -> None:
        logger.info("Transcribing meeting %s (token %s)", event.meeting_id, event.stage_token)
        run_transcription_stage(self, event)

    def on_transcript_ready(self, event: StageEvent) -> None:
        logger.info("Generating minutes for meeting %s (token %s)", event.meeting_id, event.stage_token)
        run_minutes_stage(self, event)

    def on_finished(self, event: StageEvent) -> None:
        if event.kind is PipelineEvent.STAGE_FAILED:
            logger.warning("Meeting %s failed (%s)", event.meeting_id, event.failure_kind)
        else:
            logger.info("Meeting %s is ready for review", event.meeting_id)
