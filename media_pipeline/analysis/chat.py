"""Chat-completions transcript analysis engine.

Sends a compact prompt built from the transcript to an OpenAI-compatible
``/chat/completions`` endpoint and parses the JSON object the model
returns into an AnalysisResult.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from media_pipeline.analysis.interface import (
    AnalysisEngine,
    AnalysisResult,
    HighlightSegment,
)
from media_pipeline.analysis.prompt import (
    SYSTEM_PROMPT,
    build_analysis_prompt,
    strip_code_fences,
)
from media_pipeline.config import DEFAULT_ANALYSIS_MODEL, DEFAULT_BASE_URL
from media_pipeline.transcription.interface import Transcript
from media_pipeline.utils.errors import (
    ClassifiedError,
    ConfigurationError,
    ErrorCategory,
)
from media_pipeline.utils.http import parse_json_body, post_with_timeout, truncate
from media_pipeline.utils.retry import (
    FAST_RETRY,
    SLOW_RETRY,
    RetryPolicy,
    execute_with_retries,
)

logger = logging.getLogger(__name__)

ANALYSIS_TIMEOUT_SECONDS = 60.0
ANALYSIS_MAX_TOKENS = 1500
ANALYSIS_TEMPERATURE = 0.5


class ChatAnalysisEngine(AnalysisEngine):
    """Highlight and metadata generation through a chat-completions model.

    Args:
        api_key: API key for bearer authentication.
        base_url: Service base URL (default production endpoint).
        model: Chat model identifier.
        timeout: Hard deadline in seconds for one request (default 60).
        client: Optional shared httpx client; one is created per call
            when omitted.
        inner_retry: Fast retry layer around each request.
        outer_retry: Slow retry layer around the fast layer.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_ANALYSIS_MODEL,
        timeout: float = ANALYSIS_TIMEOUT_SECONDS,
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

    async def analyze(self, transcript: Transcript) -> AnalysisResult:
        """Generate a summary and highlight metadata for a transcript.

        Raises:
            ClassifiedError: CLIENT_FAILURE for an empty transcript (no
                request is made), otherwise the classified request failure
                once retries give up.
        """
        if not transcript.text.strip():
            raise ClassifiedError(
                "Cannot analyze an empty transcript",
                category=ErrorCategory.CLIENT_FAILURE,
                retryable=False,
                attempts=0,
                context="analysis",
            )

        payload = self._build_request(transcript)

        if self._client is not None:
            return await self._analyze_with_retries(self._client, payload)

        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
            return await self._analyze_with_retries(client, payload)

    def _build_request(self, transcript: Transcript) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_analysis_prompt(transcript)},
            ],
            "temperature": ANALYSIS_TEMPERATURE,
            "max_tokens": ANALYSIS_MAX_TOKENS,
        }

    async def _analyze_with_retries(
        self, client: httpx.AsyncClient, payload: dict[str, Any]
    ) -> AnalysisResult:
        return await execute_with_retries(
            lambda: self._request_analysis(client, payload),
            context="analysis",
            inner=self._inner_retry,
            outer=self._outer_retry,
        )

    async def _request_analysis(
        self, client: httpx.AsyncClient, payload: dict[str, Any]
    ) -> AnalysisResult:
        """Send one analysis request and parse the model's answer."""
        start = time.monotonic()
        logger.info("Analyzing transcript with %s", self._model)

        response = await post_with_timeout(
            client,
            f"{self._base_url}/chat/completions",
            timeout=self._timeout,
            context="analysis",
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            json=payload,
        )
        body = parse_json_body(response, "analysis")
        result = self._convert_response(body)

        logger.info(
            "Analysis completed in %.2fs",
            time.monotonic() - start,
            extra={"stage": "analysis"},
        )
        return result

    def _convert_response(self, body: dict[str, Any]) -> AnalysisResult:
        """Extract and parse the JSON object in the first choice's message.

        Raises:
            ClassifiedError: UNKNOWN category when the content is not a
                JSON object.
        """
        content = "{}"
        choices = body.get("choices") or []
        if choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}
            if not isinstance(message, dict):
                raise ClassifiedError(
                    f"Analysis response message is not a JSON object: "
                    f"{truncate(str(message))}",
                    category=ErrorCategory.UNKNOWN,
                    retryable=False,
                    raw_payload=body,
                    context="analysis",
                )
            content = message.get("content") or "{}"

        cleaned = strip_code_fences(str(content))
        try:
            analysis = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse analysis content: %s", truncate(cleaned))
            raise ClassifiedError(
                "Failed to parse analysis response. The model may have "
                f"returned invalid JSON: {truncate(cleaned)}",
                category=ErrorCategory.UNKNOWN,
                retryable=False,
                raw_payload=content,
                context="analysis",
            ) from exc

        if not isinstance(analysis, dict):
            raise ClassifiedError(
                f"Analysis response is not a JSON object: {truncate(cleaned)}",
                category=ErrorCategory.UNKNOWN,
                retryable=False,
                raw_payload=content,
                context="analysis",
            )

        highlights = analysis.get("highlights") or []
        if isinstance(highlights, str):
            highlights = [highlights]
        return AnalysisResult(
            summary=str(analysis.get("summary") or ""),
            highlights=[str(item) for item in highlights if item],
            segments=[
                _parse_highlight_segment(item)
                for item in analysis.get("segments") or []
                if isinstance(item, dict)
            ],
        )


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _parse_highlight_segment(item: dict[str, Any]) -> HighlightSegment:
    hashtags = item.get("hashtags") or []
    if isinstance(hashtags, str):
        hashtags = hashtags.split()
    return HighlightSegment(
        start_time=_as_float(item.get("startTime")),
        end_time=_as_float(item.get("endTime")),
        title=str(item.get("title") or ""),
        caption=str(item.get("caption") or ""),
        description=str(item.get("description") or ""),
        hashtags=[str(tag) for tag in hashtags],
        hook=str(item.get("hook") or ""),
    )
