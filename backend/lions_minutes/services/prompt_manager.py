"""Prompts that turn a meeting transcript into formal minute items."""

from __future__ import annotations

from typing import Optional


SYSTEM_PROMPT = "You are a professional secretary. Output only valid JSON."


# The output contract the extractor in minutes_service expects
OUTPUT_CONTRACT = """Format your response as a JSON array of objects with the following structure:
[
  {
    "item": "1.0",
    "description": "The exact wording of the minute item, formal and concise.",
    "remark": "Action By: Person Name OR 'Info'"
  }
]"""


RULES = [
    'Use "Info" for remark if no specific action is required.',
    "Number items sequentially (1.0, 2.0, etc.).",
    "Capture motions, proposers, and seconders clearly.",
    "Ignore small talk.",
    "If the agenda is provided, try to align the minutes with the agenda items.",
]


def build_minutes_prompt(transcript_text: str, agenda: Optional[str], club_name: str) -> str:
    """Assemble the user prompt for one meeting.

    The agenda, when present, is passed through verbatim as structuring
    guidance; it is never summarized or reordered.
    """
    parts = [
        f"You are the Secretary of the {club_name}.",
        "Your task is to convert the following meeting transcript into formal minute items.",
    ]
    if agenda and agenda.strip():
        parts.append(f"Here is the meeting agenda/context to guide the structure:\n{agenda}")
    parts.append(OUTPUT_CONTRACT)
    parts.append("Rules:\n" + "\n".join(f"- {rule}" for rule in RULES))
    parts.append("Transcript:\n" + transcript_text)
    return "\n\n".join(parts)
