from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional
import os

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


TEMPLATE_FILENAME = "lions-club minutes template.docx"


def _appdata() -> Path:
    return Path(os.getenv("APPDATA", "")) / "LionsMinutes"


class Settings(BaseSettings):
    app_name: str = "Lions Minutes"
    club_name: str = "Lions Club of KL Vision City"

    # Base roaming app data dir (e.g., %APPDATA%\LionsMinutes)
    appdata_dir: Path = Field(default_factory=_appdata)
    data_dir: Path = Field(default_factory=lambda: _appdata() / "data")
    audio_dir: Path = Field(default_factory=lambda: _appdata() / "audio")
    logs_dir: Path = Field(default_factory=lambda: _appdata() / "logs")

    database_path: Path = Field(default_factory=lambda: _appdata() / "data" / "lions_minutes.db")

    # Where the speech service can reach our blob store
    public_base_url: str = "http://127.0.0.1:8000"

    gladia_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("lm_gladia_api_key", "gladia_api_key")
    )
    gladia_base_url: str = "https://api.gladia.io"

    groq_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("lm_groq_api_key", "groq_api_key")
    )
    groq_base_url: str = "https://api.groq.com/openai/v1"
    groq_model: str = "llama-3.3-70b-versatile"
    groq_probe_model: str = "llama3-8b-8192"
    llm_temperature: float = 0.1

    http_timeout_seconds: float = 60.0

    # Transcription polling; both bounds fail the stage as timed out
    stt_poll_interval_seconds: float = 3.0
    stt_max_poll_attempts: int = 400
    stt_timeout_seconds: float = 1800.0
    stt_max_unknown_polls: int = 3

    worker_threads: int = 4

    template_path: Optional[Path] = None

    class Config:
        env_prefix = "LM_"
        case_sensitive = False

    def ensure_dirs(self) -> None:
        for d in [self.appdata_dir, self.data_dir, self.audio_dir, self.logs_dir]:
            d.mkdir(parents=True, exist_ok=True)

    @property
    def resolved_template_path(self) -> Path:
        return self.template_path or (self.data_dir / TEMPLATE_FILENAME)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
