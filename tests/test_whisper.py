"""Tests for the Whisper transcription engine."""

import asyncio
import json

import httpx
import pytest

from media_pipeline.transcription.interface import MediaFile, Transcript, TranscriptionEngine
from media_pipeline.transcription.validation import MAX_FILE_SIZE_BYTES
from media_pipeline.transcription.whisper import WhisperEngine
from media_pipeline.utils.errors import ClassifiedError, ConfigurationError, ErrorCategory
from media_pipeline.utils.retry import RetryPolicy

NO_RETRY = RetryPolicy(max_retries=0, network_max_retries=0)
QUICK_RETRY = RetryPolicy(
    max_retries=2, base_delay=0.01, max_delay=0.02, network_delays=(0.01,)
)

VERBOSE_RESPONSE = {
    "text": " Hello and welcome. Today we talk about retries.",
    "duration": 12.5,
    "segments": [
        {"id": 0, "start": 0.0, "end": 4.2, "text": " Hello and welcome."},
        {"id": 1, "start": 4.2, "end": 12.5, "text": " Today we talk about retries."},
    ],
}


def _make_response(
    status_code: int = 200,
    json_data: dict | None = None,
    text: str = "",
    headers: dict | None = None,
) -> httpx.Response:
    """Build an httpx.Response with proper content encoding."""
    if json_data is not None:
        content = json.dumps(json_data).encode("utf-8")
        response_headers = {"content-type": "application/json"}
    else:
        content = text.encode("utf-8")
        response_headers = {"content-type": "text/plain"}
    response_headers.update(headers or {})
    return httpx.Response(
        status_code=status_code,
        content=content,
        headers=response_headers,
        request=httpx.Request("POST", "https://mock"),
    )


def _build_mock_client(handler) -> httpx.AsyncClient:
    """Create an AsyncClient backed by a MockTransport handler."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _media(content: bytes = b"fake video bytes", mime_type: str = "video/mp4") -> MediaFile:
    return MediaFile(filename="clip.mp4", content=content, mime_type=mime_type)


def _engine(handler, inner: RetryPolicy = NO_RETRY, **kwargs) -> WhisperEngine:
    return WhisperEngine(
        api_key="test-key",
        base_url="https://mock-api/v1",
        client=_build_mock_client(handler),
        inner_retry=inner,
        outer_retry=NO_RETRY,
        **kwargs,
    )


class TestWhisperEngineConstruction:
    """Tests for WhisperEngine initialization."""

    def test_requires_api_key(self) -> None:
        with pytest.raises(ConfigurationError, match="api_key is required"):
            WhisperEngine(api_key="")

    def test_default_timeout_is_five_minutes(self) -> None:
        engine = WhisperEngine(api_key="test-key")
        assert engine._timeout == 300.0

    def test_isinstance_transcription_engine(self) -> None:
        assert isinstance(WhisperEngine(api_key="test-key"), TranscriptionEngine)


class TestTranscriptionRequest:
    """Tests for the outgoing multipart request."""

    @pytest.mark.asyncio
    async def test_sends_expected_form_fields(self) -> None:
        call_log: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            call_log.append(request)
            return _make_response(200, VERBOSE_RESPONSE)

        result = await _engine(handler).transcribe(_media(), {})

        assert isinstance(result, Transcript)
        assert len(call_log) == 1
        request = call_log[0]
        assert request.url.path == "/v1/audio/transcriptions"
        assert request.headers["authorization"] == "Bearer test-key"

        body = request.content.decode("utf-8", errors="replace")
        assert 'filename="clip.mp4"' in body
        assert "whisper-1" in body
        assert "verbose_json" in body
        assert 'name="timestamp_granularities[]"' in body
        assert 'name="temperature"' in body
        assert 'name="language"\r\n\r\nen' in body

    @pytest.mark.asyncio
    async def test_language_hint_from_metadata(self) -> None:
        bodies: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content.decode("utf-8", errors="replace"))
            return _make_response(200, VERBOSE_RESPONSE)

        await _engine(handler).transcribe(_media(), {"language": "es"})

        assert 'name="language"\r\n\r\nes' in bodies[0]


class TestResponseConversion:
    """Tests for converting the verbose JSON response."""

    @pytest.mark.asyncio
    async def test_converts_text_segments_and_duration(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _make_response(200, VERBOSE_RESPONSE)

        result = await _engine(handler).transcribe(_media(), {})

        assert result.text == "Hello and welcome. Today we talk about retries."
        assert result.duration_seconds == 12.5
        assert [s.text for s in result.segments] == [
            "Hello and welcome.",
            "Today we talk about retries.",
        ]
        assert result.segments[1].start == 4.2
        assert result.segments[1].end == 12.5

    def test_missing_fields_default_to_empty(self) -> None:
        engine = WhisperEngine(api_key="test-key")

        result = engine._convert_response({})

        assert result.text == ""
        assert result.segments == []
        assert result.duration_seconds == 0.0

    def test_malformed_segments_are_skipped(self) -> None:
        engine = WhisperEngine(api_key="test-key")

        result = engine._convert_response(
            {
                "text": "hi",
                "segments": ["junk", {"start": "x", "end": 1}, {"start": 1, "end": 2, "text": "hi"}],
            }
        )

        assert len(result.segments) == 1
        assert result.segments[0].text == "hi"

    @pytest.mark.asyncio
    async def test_non_json_success_body_raises_classified_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _make_response(200, text="<html>maintenance</html>")

        with pytest.raises(ClassifiedError, match="Failed to parse transcription response") as exc_info:
            await _engine(handler).transcribe(_media(), {})

        assert "<html>maintenance</html>" in exc_info.value.message


class TestValidationBeforeDispatch:
    """Invalid uploads never reach the network."""

    @pytest.mark.asyncio
    async def test_oversized_file_makes_no_request(self) -> None:
        call_count = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal call_count
            call_count += 1
            return _make_response(200, VERBOSE_RESPONSE)

        media = _media(content=b"\0" * (MAX_FILE_SIZE_BYTES + 1))
        with pytest.raises(ClassifiedError) as exc_info:
            await _engine(handler, inner=QUICK_RETRY).transcribe(media, {})

        assert call_count == 0
        assert exc_info.value.category is ErrorCategory.CLIENT_FAILURE
        assert exc_info.value.attempts == 0

    @pytest.mark.asyncio
    async def test_unsupported_format_makes_no_request(self) -> None:
        call_count = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal call_count
            call_count += 1
            return _make_response(200, VERBOSE_RESPONSE)

        with pytest.raises(ClassifiedError, match="Unsupported file format"):
            await _engine(handler).transcribe(_media(mime_type="application/pdf"), {})

        assert call_count == 0


class TestErrorHandling:
    """Tests for classified failures of the transcription call."""

    @pytest.mark.asyncio
    async def test_usage_limit_retried_then_succeeds(self) -> None:
        call_count = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                return _make_response(
                    429, {"error": {"message": "Rate limit reached for requests"}}
                )
            return _make_response(200, VERBOSE_RESPONSE)

        result = await _engine(handler, inner=QUICK_RETRY).transcribe(_media(), {})

        assert call_count == 2
        assert result.text.startswith("Hello")

    @pytest.mark.asyncio
    async def test_billing_error_requested_once(self) -> None:
        call_count = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal call_count
            call_count += 1
            return _make_response(
                429, {"error": {"message": "Your credit balance is too low."}}
            )

        with pytest.raises(ClassifiedError) as exc_info:
            await _engine(handler, inner=QUICK_RETRY).transcribe(_media(), {})

        assert call_count == 1
        assert exc_info.value.category is ErrorCategory.BILLING_QUOTA
        assert exc_info.value.http_status == 429

    @pytest.mark.asyncio
    async def test_html_error_body_becomes_truncated_message(self) -> None:
        html = "<html>" + "x" * 500 + "</html>"

        def handler(request: httpx.Request) -> httpx.Response:
            return _make_response(502, text=html)

        with pytest.raises(ClassifiedError) as exc_info:
            await _engine(handler).transcribe(_media(), {})

        assert exc_info.value.category is ErrorCategory.SERVER_FAILURE
        assert exc_info.value.message.startswith("<html>")
        assert len(exc_info.value.message) == 200

    @pytest.mark.asyncio
    async def test_retry_after_header_is_surfaced(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _make_response(
                429,
                {"error": {"message": "Rate limit reached"}},
                headers={"retry-after": "17"},
            )

        with pytest.raises(ClassifiedError) as exc_info:
            await _engine(handler).transcribe(_media(), {})

        assert exc_info.value.category is ErrorCategory.USAGE_LIMIT
        assert exc_info.value.retry_after_seconds == 17

    @pytest.mark.asyncio
    async def test_connection_error_is_network_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        with pytest.raises(ClassifiedError) as exc_info:
            await _engine(handler).transcribe(_media(), {})

        assert exc_info.value.category is ErrorCategory.NETWORK_FAILURE
        assert exc_info.value.http_status == 503

    @pytest.mark.asyncio
    async def test_timeout_aborts_and_becomes_network_failure(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return _make_response(200, VERBOSE_RESPONSE)

        engine = _engine(handler, timeout=0.05)
        with pytest.raises(ClassifiedError, match="timed out") as exc_info:
            await asyncio.wait_for(engine.transcribe(_media(), {}), timeout=2.0)

        assert exc_info.value.category is ErrorCategory.NETWORK_FAILURE
        assert exc_info.value.http_status == 504
