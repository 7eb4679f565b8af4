from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, TYPE_CHECKING

from lions_minutes.config import Settings
from lions_minutes.errors import (
    RemoteServiceError,
    ResponseParseError,
    TranscriptionTimeoutError,
    classify_failure,
)
from lions_minutes.models.meeting import MeetingStatus
from lions_minutes.models.schemas import Utterance
from lions_minutes.repositories.meetings import MeetingStore
from lions_minutes.services.events import StageEvent

if TYPE_CHECKING:  # pragma: no cover
    from lions_minutes.services.pipeline import Pipeline

logger = logging.getLogger("lions_minutes.transcription")


IN_PROGRESS_STATUSES = frozenset({"queued", "processing"})
UNKNOWN_SPEAKER = "Speaker ?"


class SpeechToTextClient(Protocol):
    def submit(self, audio_url: str) -> str: ...

    def fetch(self, result_url: str) -> Dict[str, Any]: ...

    def probe(self) -> None: ...


@dataclass(frozen=True)
class PollPolicy:
    interval_seconds: float = 3.0
    max_attempts: int = 400
    timeout_seconds: float = 1800.0
    max_unknown_polls: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollPolicy":
        return cls(
            interval_seconds=settings.stt_poll_interval_seconds,
            max_attempts=settings.stt_max_poll_attempts,
            timeout_seconds=settings.stt_timeout_seconds,
            max_unknown_polls=settings.stt_max_unknown_polls,
        )


def poll_transcription(
    client: SpeechToTextClient,
    result_url: str,
    policy: PollPolicy,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Dict[str, Any]:
    """Wait for a submitted job to finish and return its ``result`` payload.

    Fails closed: a job that never reaches ``done``/``error`` within the
    attempt or wall-clock bound raises :class:`TranscriptionTimeoutError`.
    """
    started = clock()
    unknown_streak = 0
    for attempt in range(1, policy.max_attempts + 1):
        sleep(policy.interval_seconds)
        payload = client.fetch(result_url)
        status = payload.get("status")

        if status == "done":
            result = payload.get("result")
            if not isinstance(result, dict):
                raise ResponseParseError("Transcription finished without a result payload")
            logger.info("Transcription done after %d polls", attempt)
            return result
        if status == "error":
            detail = payload.get("error_code") or payload.get("error") or "unknown error"
            raise RemoteServiceError(f"Transcription job failed: {detail}")

        if status in IN_PROGRESS_STATUSES:
            unknown_streak = 0
        else:
            unknown_streak += 1
            logger.warning("Unrecognized transcription status %r (poll %d)", status, attempt)
            if unknown_streak >= policy.max_unknown_polls:
                raise RemoteServiceError(f"Transcription job reported unrecognized status {status!r}")

        if clock() - started >= policy.timeout_seconds:
            raise TranscriptionTimeoutError(
                f"Transcription did not finish within {policy.timeout_seconds:.0f}s"
            )
    raise TranscriptionTimeoutError(f"Transcription did not finish after {policy.max_attempts} polls")


def normalize_utterances(result: Dict[str, Any]) -> List[Utterance]:
    """Map the provider's utterance list onto ordered :class:`Utterance` objects."""
    try:
        raw = result["transcription"]["utterances"]
    except (KeyError, TypeError) as exc:
        raise ResponseParseError("Transcription result has no utterance list") from exc
    if not isinstance(raw, list):
        raise ResponseParseError("Transcription utterances is not a list")

    utterances: List[Utterance] = []
    for u in raw:
        if not isinstance(u, dict):
            raise ResponseParseError("Transcription utterance is not an object")
        speaker = u.get("speaker")
        label = f"Speaker {speaker}" if speaker is not None and speaker != "" else UNKNOWN_SPEAKER
        try:
            start = float(u.get("start") or 0.0)
        except (TypeError, ValueError):
            start = 0.0
        utterances.append(Utterance(speaker=label, text=str(u.get("text") or "").strip(), start_seconds=start))
    return utterances


def transcribe_audio(
    client: SpeechToTextClient,
    audio_url: str,
    policy: PollPolicy,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> List[Utterance]:
    result_url = client.submit(audio_url)
    logger.info("Transcription queued, result URL: %s", result_url)
    result = poll_transcription(client, result_url, policy, sleep=sleep, clock=clock)
    utterances = normalize_utterances(result)
    if not utterances:
        raise RemoteServiceError("Transcription produced no utterances")
    return utterances


def run_transcription_stage(ctx: "Pipeline", event: StageEvent) -> None:
    """Stage handler for ``AUDIO_READY``: transcribe, persist, hand off.

    Any failure turns into ``FAILED`` with nothing persisted for this stage.
    """
    with ctx.session_factory() as session:
        token = MeetingStore(session, ctx.bus).claim_stage(
            event.meeting_id, MeetingStatus.PROCESSING_STT, event.stage_token
        )
    if token is None:
        return

    utterances: Optional[List[Utterance]] = None
    failure: Optional[Exception] = None
    try:
        client = ctx.stt_client_factory(ctx.settings)
        utterances = transcribe_audio(
            client,
            event.audio_url or "",
            PollPolicy.from_settings(ctx.settings),
            sleep=ctx.sleep,
            clock=ctx.clock,
        )
    except Exception as exc:
        failure = exc
        logger.exception("Transcription failed for meeting %s", event.meeting_id)

    # Fresh session: nothing was held open across the remote job
    with ctx.session_factory() as session:
        store = MeetingStore(session, ctx.bus)
        if failure is not None:
            store.mark_failed(event.meeting_id, event.user_id, token, classify_failure(failure))
        else:
            store.save_transcript(event.meeting_id, event.user_id, token, utterances or [])
