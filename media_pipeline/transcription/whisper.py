"""Whisper speech-to-text client implementation.

Implements WhisperEngine against an OpenAI-compatible
``/audio/transcriptions`` endpoint, requesting segment-level timestamps
and converting the verbose JSON response to the internal Transcript model.
"""

import logging
import time

import httpx

from media_pipeline.config import DEFAULT_BASE_URL, DEFAULT_TRANSCRIPTION_MODEL
from media_pipeline.transcription.interface import (
    MediaFile,
    Transcript,
    TranscriptionEngine,
    TranscriptSegment,
)
from media_pipeline.transcription.validation import validate_media_file
from media_pipeline.utils.errors import ConfigurationError
from media_pipeline.utils.http import parse_json_body, post_with_timeout
from media_pipeline.utils.retry import (
    FAST_RETRY,
    SLOW_RETRY,
    RetryPolicy,
    execute_with_retries,
)

logger = logging.getLogger(__name__)

TRANSCRIPTION_TIMEOUT_SECONDS = 300.0
DEFAULT_LANGUAGE = "en"


class WhisperEngine(TranscriptionEngine):
    """Whisper transcription engine with segment timestamps.

    Args:
        api_key: API key for bearer authentication.
        base_url: Service base URL (default production endpoint).
        model: Transcription model identifier.
        timeout: Hard deadline in seconds for one request (default 300).
        client: Optional shared httpx client; one is created per call
            when omitted.
        inner_retry: Fast retry layer around each request.
        outer_retry: Slow retry layer around the fast layer.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_TRANSCRIPTION_MODEL,
        timeout: float = TRANSCRIPTION_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        inner_retry: RetryPolicy = FAST_RETRY,
        outer_retry: RetryPolicy = SLOW_RETRY,
    ) -> None:
        if not api_key:
            raise ConfigurationError("api_key is required", setting="OPENAI_API_KEY")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._client = client
        self._inner_retry = inner_retry
        self._outer_retry = outer_retry

    async def transcribe(self, media: MediaFile, metadata: dict | None = None) -> Transcript:
        """Transcribe an audio or video file.

        The file is validated first; validation failures raise before any
        request is made and are never retried.

        Args:
            media: The uploaded file.
            metadata: Job metadata; ``language`` overrides the default hint.

        Returns:
            Transcript with text, timed segments and duration.

        Raises:
            ClassifiedError: On validation failure or once retries give up.
        """
        validate_media_file(media)
        language = (metadata or {}).get("language") or DEFAULT_LANGUAGE

        if self._client is not None:
            return await self._transcribe_with_retries(self._client, media, language)

        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
            return await self._transcribe_with_retries(client, media, language)

    async def _transcribe_with_retries(
        self, client: httpx.AsyncClient, media: MediaFile, language: str
    ) -> Transcript:
        return await execute_with_retries(
            lambda: self._request_transcription(client, media, language),
            context="transcription",
            inner=self._inner_retry,
            outer=self._outer_retry,
        )

    async def _request_transcription(
        self, client: httpx.AsyncClient, media: MediaFile, language: str
    ) -> Transcript:
        """Send one transcription request and convert the response."""
        start = time.monotonic()
        logger.info(
            "Transcribing %s with %s (%.2fMB)",
            media.filename,
            self._model,
            media.size_bytes / (1024 * 1024),
        )

        files = {"file": (media.filename, media.content, media.mime_type)}
        data = {
            "model": self._model,
            "language": language,
            "response_format": "verbose_json",
            "timestamp_granularities[]": "segment",
            "temperature": "0",
        }
        response = await post_with_timeout(
            client,
            f"{self._base_url}/audio/transcriptions",
            timeout=self._timeout,
            context="transcription",
            headers={"Authorization": f"Bearer {self._api_key}"},
            files=files,
            data=data,
        )
        body = parse_json_body(response, "transcription")

        logger.info(
            "Transcription completed in %.2fs",
            time.monotonic() - start,
            extra={"stage": "transcription"},
        )
        return self._convert_response(body)

    def _convert_response(self, raw_response: dict) -> Transcript:
        """Convert a verbose JSON response to the internal Transcript model.

        Malformed segment entries are skipped rather than failing the job.
        """
        segments: list[TranscriptSegment] = []
        for item in raw_response.get("segments") or []:
            if not isinstance(item, dict):
                continue
            try:
                start = float(item.get("start", 0.0) or 0.0)
                end = float(item.get("end", start) or start)
            except (TypeError, ValueError):
                continue
            segments.append(
                TranscriptSegment(
                    start=start,
                    end=end,
                    text=str(item.get("text") or "").strip(),
                )
            )

        try:
            duration = float(raw_response.get("duration") or 0.0)
        except (TypeError, ValueError):
            duration = 0.0

        return Transcript(
            text=str(raw_response.get("text") or "").strip(),
            segments=segments,
            duration_seconds=duration,
            raw_response=raw_response,
        )
