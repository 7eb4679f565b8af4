from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence, Union, TYPE_CHECKING

from lions_minutes.errors import NotFoundError, ResponseParseError, classify_failure
from lions_minutes.models.meeting import MeetingStatus
from lions_minutes.models.schemas import MinuteItemData, Utterance
from lions_minutes.repositories.meetings import MeetingStore
from lions_minutes.services.events import StageEvent
from lions_minutes.services.prompt_manager import SYSTEM_PROMPT, build_minutes_prompt

if TYPE_CHECKING:  # pragma: no cover
    from lions_minutes.services.pipeline import Pipeline

logger = logging.getLogger("lions_minutes.minutes")


class ChatClient(Protocol):
    def complete_json(self, system: str, user: str, temperature: float) -> str: ...

    def probe(self, model: Optional[str] = None) -> None: ...


# Accepted response shapes, matched in this order by classify_payload


@dataclass(frozen=True)
class BareArray:
    items: List[Any]


@dataclass(frozen=True)
class WrappedInMinutesKey:
    items: List[Any]


@dataclass(frozen=True)
class WrappedInUnknownKey:
    key: str
    items: List[Any]


@dataclass(frozen=True)
class NoArray:
    items: List[Any] = field(default_factory=list)


MinutesPayload = Union[BareArray, WrappedInMinutesKey, WrappedInUnknownKey, NoArray]


def _format_seconds(value: float) -> str:
    v = float(value)
    if v.is_integer():
        return str(int(v))
    return f"{v:.2f}".rstrip("0").rstrip(".")


def render_transcript(utterances: Sequence[Utterance]) -> str:
    """One line per utterance: ``[<start>s] <speaker>: <text>``."""
    lines: List[str] = []
    for u in utterances:
        text = " ".join(u.text.split())
        lines.append(f"[{_format_seconds(u.start_seconds)}s] {u.speaker}: {text}")
    return "\n".join(lines)


def strip_code_fences(text: str) -> str:
    return (text or "").replace("```json", "").replace("```", "").strip()


def classify_payload(parsed: Any) -> MinutesPayload:
    if isinstance(parsed, list):
        return BareArray(parsed)
    if isinstance(parsed, dict):
        minutes = parsed.get("minutes")
        if isinstance(minutes, list):
            return WrappedInMinutesKey(minutes)
        for key, value in parsed.items():
            if isinstance(value, list):
                return WrappedInUnknownKey(str(key), value)
    return NoArray()


def extract_minute_items(text: str) -> List[Any]:
    """Pull the minute-item array out of a model response.

    Invalid JSON is a hard failure; valid JSON without any array yields ``[]``.
    """
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except ValueError as exc:
        logger.error("Could not parse model response as JSON: %r", text[:500])
        raise ResponseParseError("Failed to parse AI response") from exc
    payload = classify_payload(parsed)
    if isinstance(payload, WrappedInUnknownKey):
        logger.info("Minutes found under unexpected key %r", payload.key)
    return list(payload.items)


def coerce_minute_items(raw_items: Sequence[Any]) -> List[MinuteItemData]:
    items: List[MinuteItemData] = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise ResponseParseError(f"Minute item {index} is not an object")
        label = str(raw.get("item") or "").strip() or f"{index}.0"
        remark = str(raw.get("remark") or "").strip() or "Info"
        items.append(
            MinuteItemData(
                item=label,
                description=str(raw.get("description") or "").strip(),
                remark=remark,
            )
        )
    return items


def generate_minutes(
    client: ChatClient,
    utterances: Sequence[Utterance],
    agenda: Optional[str],
    club_name: str,
    temperature: float,
) -> List[MinuteItemData]:
    prompt = build_minutes_prompt(render_transcript(utterances), agenda, club_name)
    content = client.complete_json(SYSTEM_PROMPT, prompt, temperature)
    return coerce_minute_items(extract_minute_items(content))


def run_minutes_stage(ctx: "Pipeline", event: StageEvent) -> None:
    """Stage handler for ``TRANSCRIPT_READY``: generate and persist the minutes."""
    with ctx.session_factory() as session:
        store = MeetingStore(session, ctx.bus)
        meeting = store.get(event.meeting_id)
        utterances = store.get_transcript(event.meeting_id) if meeting is not None else []
        if meeting is None or not utterances:
            raise NotFoundError("Meeting or transcript not found")
        agenda = meeting.agenda
        token = store.claim_stage(event.meeting_id, MeetingStatus.PROCESSING_LLM, event.stage_token)
    if token is None:
        return

    logger.info("Generating minutes for meeting %s from %d utterances", event.meeting_id, len(utterances))
    items: List[MinuteItemData] = []
    failure: Optional[Exception] = None
    try:
        client = ctx.llm_client_factory(ctx.settings)
        items = generate_minutes(
            client,
            utterances,
            agenda,
            ctx.settings.club_name,
            ctx.settings.llm_temperature,
        )
    except Exception as exc:
        failure = exc
        logger.exception("Minutes generation failed for meeting %s", event.meeting_id)

    with ctx.session_factory() as session:
        store = MeetingStore(session, ctx.bus)
        if failure is not None:
            store.mark_failed(event.meeting_id, event.user_id, token, classify_failure(failure))
        else:
            store.save_generated_minutes(event.meeting_id, event.user_id, token, items)
