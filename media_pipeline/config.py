"""Environment-driven configuration for the media analysis pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_ANALYSIS_MODEL = "gpt-4o-mini"
DEFAULT_TRANSCRIPTION_MODEL = "whisper-1"
DEFAULT_TRANSCRIPTION_PROVIDER = "whisper"


@dataclass(frozen=True)
class ServiceConfig:
    """Settings for the external speech-to-text and analysis services.

    Reads configuration from environment variables:
        OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_VIDEO_MODEL,
        OPENAI_TRANSCRIPTION_MODEL, TRANSCRIPTION_PROVIDER
    """

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    analysis_model: str = DEFAULT_ANALYSIS_MODEL
    transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL
    transcription_provider: str = DEFAULT_TRANSCRIPTION_PROVIDER

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


def get_config() -> ServiceConfig:
    """Build a ServiceConfig from the process environment."""
    return ServiceConfig(
        api_key=os.environ.get("OPENAI_API_KEY", ""),
        base_url=os.environ.get("OPENAI_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        analysis_model=os.environ.get("OPENAI_VIDEO_MODEL", DEFAULT_ANALYSIS_MODEL),
        transcription_model=os.environ.get(
            "OPENAI_TRANSCRIPTION_MODEL", DEFAULT_TRANSCRIPTION_MODEL
        ),
        transcription_provider=os.environ.get(
            "TRANSCRIPTION_PROVIDER", DEFAULT_TRANSCRIPTION_PROVIDER
        ),
    )
