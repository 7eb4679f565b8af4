"""Connection probe for the two external services. Touches no persisted state."""

from __future__ import annotations

import logging
from typing import Callable, Dict

from lions_minutes.config import Settings
from lions_minutes.errors import ConfigurationError, RemoteServiceError
from lions_minutes.services.minutes_service import ChatClient
from lions_minutes.services.transcription_service import SpeechToTextClient

logger = logging.getLogger("lions_minutes.diagnostics")


def _describe(exc: Exception) -> str:
    if isinstance(exc, RemoteServiceError) and exc.status_code in (401, 403):
        return "Invalid API Key"
    return str(exc) or exc.__class__.__name__


def _check(name: str, probe: Callable[[], None], ok_message: str) -> Dict[str, str]:
    try:
        probe()
    except ConfigurationError as exc:
        return {"status": "error", "message": str(exc)}
    except Exception as exc:
        logger.warning("%s connection check failed: %s", name, exc)
        return {"status": "error", "message": _describe(exc)}
    return {"status": "ok", "message": ok_message}


def check_connections(
    settings: Settings,
    stt_client_factory: Callable[[Settings], SpeechToTextClient],
    llm_client_factory: Callable[[Settings], ChatClient],
) -> Dict[str, Dict[str, str]]:
    """Ping each service independently and report ``{status, message}`` per service."""
    return {
        "gladia": _check(
            "Gladia",
            lambda: stt_client_factory(settings).probe(),
            "Connected",
        ),
        "groq": _check(
            "Groq",
            lambda: llm_client_factory(settings).probe(settings.groq_probe_model),
            f"Connected to Groq ({settings.groq_model})",
        ),
    }
