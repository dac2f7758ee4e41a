"""Classification of external-service failures.

Maps an HTTP status and a service error payload (or a raised transport
exception) to a ClassifiedError. Matching is driven by the keyword tables
below; rules are evaluated in order and the first match wins.

Usage-limit phrases are checked before billing keywords: the service's
"exceeded your current quota" message also links to billing help text,
but it is a retryable rate condition, not an account failure.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any

import httpx

from media_pipeline.utils.errors import ClassifiedError, ErrorCategory

USAGE_LIMIT_PHRASES: tuple[str, ...] = (
    "exceeded your current quota",
    "quota exceeded",
)

BILLING_KEYWORDS: tuple[str, ...] = (
    "billing quota",
    "credit",
    "payment method",
    "no active subscription",
    "subscription expired",
    "payment required",
)

# "billing" on its own counts, unless it only appears in this help text.
BILLING_WORD = "billing"
GENERIC_BILLING_HELP = "check your plan and billing"

USAGE_LIMIT_CODES: frozenset[str] = frozenset(
    {"insufficient_quota", "rate_limit_exceeded"}
)
USAGE_LIMIT_KEYWORDS: tuple[str, ...] = ("rate limit",)

TRANSPORT_MARKERS: tuple[str, ...] = (
    "fetch failed",
    "network error",
    "connection refused",
    "connection reset",
    "econnrefused",
    "econnreset",
    "enotfound",
    "etimedout",
    "name or service not known",
    "temporary failure in name resolution",
    "timed out",
    "broken pipe",
    "epipe",
)

TRANSPORT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    TimeoutError,
    ConnectionError,
)

_RETRY_AFTER_PATTERN = re.compile(
    r"(?:retry|try again)\D*?(\d+(?:\.\d+)?)\s*"
    r"(seconds?|secs?|s|minutes?|mins?|m|hours?|h)\b",
    re.IGNORECASE,
)

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600}


def _error_fields(payload: Any) -> tuple[str, str, str]:
    """Extract (message, type, code) from a service error payload."""
    if isinstance(payload, str):
        return payload, "", ""
    if not isinstance(payload, Mapping):
        return "", "", ""

    error = payload.get("error")
    if isinstance(error, Mapping):
        message = error.get("message") or payload.get("message") or ""
        return str(message), str(error.get("type") or ""), str(error.get("code") or "")
    if isinstance(error, str):
        return error, "", ""
    return str(payload.get("message") or ""), "", ""


def has_usage_limit_phrase(message: str) -> bool:
    lowered = message.lower()
    return any(phrase in lowered for phrase in USAGE_LIMIT_PHRASES)


def has_billing_keyword(message: str) -> bool:
    """Return True when the message explicitly names a billing failure."""
    lowered = message.lower()
    if any(keyword in lowered for keyword in BILLING_KEYWORDS):
        return True
    if BILLING_WORD not in lowered:
        return False
    # Ignore occurrences that are only the generic help phrase
    stripped = lowered.replace(GENERIC_BILLING_HELP, "")
    return BILLING_WORD in stripped


def is_transport_failure(message: str, transport_error: BaseException | None) -> bool:
    if transport_error is not None:
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in TRANSPORT_MARKERS)


def parse_retry_after(
    headers: Mapping[str, str] | None = None, message: str = ""
) -> int | None:
    """Extract a retry-after hint in whole seconds.

    Prefers a numeric ``retry-after`` header; falls back to a
    "retry in N seconds/minutes" phrase in the message.
    """
    if headers:
        value = headers.get("retry-after")
        if value is None:
            value = headers.get("Retry-After")
        if value is not None:
            try:
                return max(0, math.ceil(float(value)))
            except ValueError:
                pass

    match = _RETRY_AFTER_PATTERN.search(message or "")
    if not match:
        return None
    amount = float(match.group(1))
    unit = _UNIT_SECONDS[match.group(2)[0].lower()]
    return math.ceil(amount * unit)


def classify(
    http_status: int | None,
    payload: Any,
    *,
    transport_error: BaseException | None = None,
    headers: Mapping[str, str] | None = None,
    context: str | None = None,
) -> ClassifiedError:
    """Classify a failed external call.

    Args:
        http_status: Response status code, or None when no response arrived.
        payload: Parsed error body (dict), raw text, or None.
        transport_error: The transport exception when the call never got a
            response (connection refused, DNS failure, timeout, ...).
        headers: Response headers, used for the retry-after hint.
        context: Name of the failing operation, carried for logging.

    Returns:
        The ClassifiedError verdict. Nothing is raised or logged here.
    """
    message, error_type, error_code = _error_fields(payload)
    if not message and transport_error is not None:
        message = str(transport_error) or type(transport_error).__name__
    lowered = message.lower()

    if has_usage_limit_phrase(lowered):
        category, retryable = ErrorCategory.USAGE_LIMIT, True
    elif http_status == 429 and not has_billing_keyword(lowered):
        category, retryable = ErrorCategory.USAGE_LIMIT, True
    elif has_billing_keyword(lowered):
        category, retryable = ErrorCategory.BILLING_QUOTA, False
    elif (
        error_code in USAGE_LIMIT_CODES
        or error_type in USAGE_LIMIT_CODES
        or any(keyword in lowered for keyword in USAGE_LIMIT_KEYWORDS)
    ):
        category, retryable = ErrorCategory.USAGE_LIMIT, True
    elif is_transport_failure(lowered, transport_error):
        category, retryable = ErrorCategory.NETWORK_FAILURE, True
    elif http_status is not None and 500 <= http_status < 600:
        category, retryable = ErrorCategory.SERVER_FAILURE, True
    elif http_status is not None and 400 <= http_status < 500:
        category, retryable = ErrorCategory.CLIENT_FAILURE, False
    else:
        category, retryable = ErrorCategory.UNKNOWN, False

    if not message:
        message = (
            f"Request failed with status {http_status}"
            if http_status is not None
            else "Request failed"
        )

    return ClassifiedError(
        message,
        category=category,
        retryable=retryable,
        http_status=http_status,
        retry_after_seconds=parse_retry_after(headers, message),
        raw_payload=payload,
        context=context,
    )


def classify_exception(
    exc: BaseException, context: str | None = None
) -> ClassifiedError:
    """Classify an exception raised by an operation.

    ClassifiedErrors are returned as-is. Transport exceptions become
    NETWORK_FAILURE; anything else goes through the message heuristics.
    """
    if isinstance(exc, ClassifiedError):
        return exc

    if isinstance(exc, TRANSPORT_EXCEPTIONS):
        detail = str(exc) or type(exc).__name__
        if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
            detail = str(exc) or "request timed out"
        error = classify(
            None,
            f"Network error calling external service: {detail}",
            transport_error=exc,
            context=context,
        )
    else:
        error = classify(None, str(exc) or type(exc).__name__, context=context)

    error.__cause__ = exc
    return error
