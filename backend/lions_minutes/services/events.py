"""Domain events that hand a meeting from one pipeline stage to the next.

The state store publishes an event after its commit succeeds; the pipeline
subscribes the stage handlers. With an executor the handlers run on worker
threads and the publishing request returns immediately. Without one they run
inline, which is what the tests use.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger("lions_minutes.events")


class PipelineEvent(str, Enum):
    AUDIO_READY = "audio_ready"
    TRANSCRIPT_READY = "transcript_ready"
    MINUTES_READY = "minutes_ready"
    STAGE_FAILED = "stage_failed"


@dataclass(frozen=True)
class StageEvent:
    kind: PipelineEvent
    meeting_id: int
    user_id: str
    stage_token: int
    audio_url: Optional[str] = None
    failure_kind: Optional[str] = None


Handler = Callable[[StageEvent], None]


class EventBus:
    def __init__(self, executor: Optional[Executor] = None) -> None:
        self._executor = executor
        self._handlers: Dict[PipelineEvent, List[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, kind: PipelineEvent, handler: Handler) -> None:
        with self._lock:
            self._handlers.setdefault(kind, []).append(handler)

    def publish(self, event: StageEvent) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event.kind, []))
        for handler in handlers:
            if self._executor is None:
                self._run(handler, event)
            else:
                self._executor.submit(self._run, handler, event)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    @staticmethod
    def _run(handler: Handler, event: StageEvent) -> None:
        # A background job has no caller to raise to; the meeting status is the signal
        try:
            handler(event)
        except Exception:
            logger.exception(
                "Handler %s failed for %s on meeting %s",
                getattr(handler, "__name__", handler),
                event.kind.value,
                event.meeting_id,
            )
