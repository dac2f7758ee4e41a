"""HTTP helpers shared by the external-service engines.

Wraps a single httpx request with a hard deadline and turns every way it
can fail (timeout, transport error, non-2xx status, malformed body) into
a ClassifiedError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from media_pipeline.utils.classifier import classify, classify_exception
from media_pipeline.utils.errors import ClassifiedError, ErrorCategory

logger = logging.getLogger(__name__)

MAX_ERROR_TEXT_CHARS = 200
GATEWAY_TIMEOUT_STATUS = 504


def truncate(text: str, limit: int = MAX_ERROR_TEXT_CHARS) -> str:
    return text if len(text) <= limit else text[:limit]


async def post_with_timeout(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float,
    context: str,
    **kwargs: Any,
) -> httpx.Response:
    """POST to ``url`` and abort the request once ``timeout`` seconds pass.

    Raises:
        ClassifiedError: NETWORK_FAILURE on timeout or transport failure;
            the classifier's verdict for a non-2xx response.
    """
    try:
        response = await asyncio.wait_for(client.post(url, **kwargs), timeout=timeout)
    except (TimeoutError, httpx.TimeoutException) as exc:
        raise ClassifiedError(
            f"{context} request timed out after {timeout:g}s",
            category=ErrorCategory.NETWORK_FAILURE,
            retryable=True,
            http_status=GATEWAY_TIMEOUT_STATUS,
            context=context,
        ) from exc
    except httpx.TransportError as exc:
        logger.error("%s transport failure: %r", context, exc)
        raise classify_exception(exc, context) from exc

    if not response.is_success:
        payload = parse_error_body(response)
        logger.error(
            "%s failed with status %d: %s",
            context,
            response.status_code,
            payload,
        )
        raise classify(
            response.status_code,
            payload,
            headers=response.headers,
            context=context,
        )

    return response


def parse_error_body(response: httpx.Response) -> Any:
    """Parse an error response body without ever raising.

    Non-JSON bodies (HTML error pages from proxies, plain text) are
    wrapped so the truncated raw text becomes the error message.
    """
    try:
        return response.json()
    except ValueError:
        text = truncate(response.text.strip())
        if not text:
            text = f"{response.status_code} {response.reason_phrase}".strip()
        return {"error": {"message": text}}


def parse_json_body(response: httpx.Response, context: str) -> dict[str, Any]:
    """Parse a successful response body as a JSON object.

    Raises:
        ClassifiedError: UNKNOWN category carrying the truncated raw text
            when the body is not a JSON object.
    """
    try:
        body = response.json()
    except ValueError as exc:
        raise ClassifiedError(
            f"Failed to parse {context} response: {truncate(response.text)}",
            category=ErrorCategory.UNKNOWN,
            retryable=False,
            http_status=response.status_code,
            raw_payload=response.text,
            context=context,
        ) from exc

    if not isinstance(body, dict):
        raise ClassifiedError(
            f"Unexpected {context} response: {truncate(str(body))}",
            category=ErrorCategory.UNKNOWN,
            retryable=False,
            http_status=response.status_code,
            raw_payload=body,
            context=context,
        )
    return body
