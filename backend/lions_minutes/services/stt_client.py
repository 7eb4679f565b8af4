"""Thin client for the Gladia v2 pre-recorded transcription API."""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from lions_minutes.config import Settings
from lions_minutes.errors import ConfigurationError, RemoteServiceError


class GladiaClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.gladia.io",
        timeout: float = 60.0,
        http: Optional[requests.Session] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("Missing GLADIA_API_KEY")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http = http or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "GladiaClient":
        return cls(
            api_key=settings.gladia_api_key or "",
            base_url=settings.gladia_base_url,
            timeout=settings.http_timeout_seconds,
        )

    def _headers(self) -> Dict[str, str]:
        return {"x-gladia-key": self._api_key, "Content-Type": "application/json"}

    def submit(self, audio_url: str) -> str:
        """Queue a diarized transcription job and return its result URL."""
        data = self._request(
            "POST",
            f"{self._base_url}/v2/transcription",
            json={"audio_url": audio_url, "diarization": True},
        )
        result_url = data.get("result_url") if isinstance(data, dict) else None
        if not result_url:
            raise RemoteServiceError("Transcription submission returned no result_url")
        return str(result_url)

    def fetch(self, result_url: str) -> Dict[str, Any]:
        data = self._request("GET", result_url)
        if not isinstance(data, dict):
            raise RemoteServiceError("Transcription poll returned a non-object payload")
        return data

    def probe(self) -> None:
        self._request("GET", f"{self._base_url}/v2/transcription", params={"limit": 1})

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = self._http.request(method, url, headers=self._headers(), timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            raise RemoteServiceError(f"Gladia request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise RemoteServiceError(
                f"Gladia returned HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteServiceError("Gladia returned a non-JSON body") from exc
