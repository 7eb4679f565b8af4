"""Meeting status transitions."""

from __future__ import annotations

from typing import Dict, FrozenSet

from lions_minutes.errors import InvalidTransitionError
from lions_minutes.models.meeting import MeetingStatus


ALLOWED_TRANSITIONS: Dict[MeetingStatus, FrozenSet[MeetingStatus]] = {
    MeetingStatus.RECORDING: frozenset({MeetingStatus.PROCESSING_STT}),
    MeetingStatus.PROCESSING_STT: frozenset({MeetingStatus.PROCESSING_LLM, MeetingStatus.FAILED}),
    MeetingStatus.PROCESSING_LLM: frozenset({MeetingStatus.READY_FOR_REVIEW, MeetingStatus.FAILED}),
    MeetingStatus.READY_FOR_REVIEW: frozenset({MeetingStatus.FINALIZED}),
    MeetingStatus.FINALIZED: frozenset(),
    # Manual restart of the stage that failed: re-upload audio or regenerate minutes
    MeetingStatus.FAILED: frozenset({MeetingStatus.PROCESSING_STT, MeetingStatus.PROCESSING_LLM}),
}

# Statuses at which the minutes artifact exists
MINUTES_STATUSES: FrozenSet[MeetingStatus] = frozenset(
    {MeetingStatus.READY_FOR_REVIEW, MeetingStatus.FINALIZED}
)


def can_transition(current: MeetingStatus, target: MeetingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: MeetingStatus) -> MeetingStatus:
    """Validate ``current -> target`` and return the parsed current status."""
    try:
        current_status = MeetingStatus(current)
    except ValueError as exc:
        raise InvalidTransitionError(f"Unknown meeting status: {current!r}") from exc
    if not can_transition(current_status, target):
        raise InvalidTransitionError(
            f"Cannot move meeting from {current_status.value} to {target.value}"
        )
    return current_status


def has_minutes(status: str) -> bool:
    try:
        return MeetingStatus(status) in MINUTES_STATUSES
    except ValueError:
        return False
