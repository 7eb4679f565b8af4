"""Chat-completion client for Groq's OpenAI-compatible endpoint."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from lions_minutes.config import Settings
from lions_minutes.errors import ConfigurationError, RemoteServiceError, ResponseParseError


class GroqChatClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.groq.com/openai/v1",
        model: str = "llama-3.3-70b-versatile",
        timeout: float = 60.0,
        http: Optional[requests.Session] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("Missing GROQ_API_KEY")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self.model = model
        self._timeout = timeout
        self._http = http or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "GroqChatClient":
        return cls(
            api_key=settings.groq_api_key or "",
            base_url=settings.groq_base_url,
            model=settings.groq_model,
            timeout=settings.http_timeout_seconds,
        )

    def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        response_format: Optional[Dict[str, str]] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        body: Dict[str, Any] = {"model": model or self.model, "messages": messages}
        if temperature is not None:
            body["temperature"] = temperature
        if response_format is not None:
            body["response_format"] = response_format
        if max_tokens is not None:
            body["max_tokens"] = max_tokens

        try:
            resp = self._http.post(
                f"{self._base_url}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise RemoteServiceError(f"Groq request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise RemoteServiceError(
                f"Groq returned HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ResponseParseError("Groq returned an unexpected completion shape") from exc
        return str(content or "")

    def complete_json(self, system: str, user: str, temperature: float) -> str:
        return self.complete(
            [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            response_format={"type": "json_object"},
        )

    def probe(self, model: Optional[str] = None) -> None:
        self.complete([{"role": "user", "content": "Test"}], model=model, max_tokens=1)
