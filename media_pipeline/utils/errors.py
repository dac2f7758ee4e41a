"""Custom exception hierarchy for the media analysis pipeline.

All exceptions inherit from PipelineError, enabling targeted handling
at pipeline boundaries while preserving specific failure context.
ClassifiedError carries the verdict of the error classifier and travels
unchanged from the failing HTTP call up to the job submitter.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Taxonomy of external-service failures."""

    BILLING_QUOTA = "billing_quota"
    USAGE_LIMIT = "usage_limit"
    NETWORK_FAILURE = "network_failure"
    SERVER_FAILURE = "server_failure"
    CLIENT_FAILURE = "client_failure"
    UNKNOWN = "unknown"


USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.BILLING_QUOTA: (
        "There is a billing issue with the analysis service. "
        "Please contact support."
    ),
    ErrorCategory.USAGE_LIMIT: (
        "The analysis service is temporarily busy. Please try again shortly."
    ),
    ErrorCategory.NETWORK_FAILURE: (
        "A network issue prevented processing. Please check connectivity "
        "and try again."
    ),
    ErrorCategory.SERVER_FAILURE: (
        "The analysis service is having problems. Please try again later."
    ),
    ErrorCategory.CLIENT_FAILURE: "The file could not be processed.",
    ErrorCategory.UNKNOWN: "Video processing failed.",
}


class PipelineError(Exception):
    """Base exception for all media pipeline errors."""

    def __init__(self, message: str, job_id: str | None = None) -> None:
        self.job_id = job_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.job_id:
            return f"[job={self.job_id}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(PipelineError):
    """Raised when the pipeline is used without the required configuration."""

    def __init__(
        self, message: str, job_id: str | None = None, setting: str | None = None
    ) -> None:
        self.setting = setting
        super().__init__(message, job_id)


class ClassifiedError(PipelineError):
    """An external-call failure with its classification attached.

    Instances are immutable: the classification fields are read-only and
    annotated copies are produced with replace().
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        retryable: bool,
        http_status: int | None = None,
        retry_after_seconds: int | None = None,
        raw_payload: Any = None,
        attempts: int = 1,
        context: str | None = None,
        job_id: str | None = None,
    ) -> None:
        self._message = message
        self._category = category
        self._retryable = retryable
        self._http_status = http_status
        self._retry_after_seconds = retry_after_seconds
        self._raw_payload = raw_payload
        self._attempts = attempts
        self._context = context
        super().__init__(message, job_id)

    @property
    def message(self) -> str:
        return self._message

    @property
    def category(self) -> ErrorCategory:
        return self._category

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def http_status(self) -> int | None:
        return self._http_status

    @property
    def retry_after_seconds(self) -> int | None:
        return self._retry_after_seconds

    @property
    def raw_payload(self) -> Any:
        return self._raw_payload

    @property
    def attempts(self) -> int:
        """Number of calls made before this error surfaced."""
        return self._attempts

    @property
    def context(self) -> str | None:
        return self._context

    def replace(self, **changes: Any) -> ClassifiedError:
        """Return a copy with the given fields changed.

        The copy keeps the original's cause so the underlying exception
        remains visible in tracebacks.
        """
        fields = {
            "message": self._message,
            "category": self._category,
            "retryable": self._retryable,
            "http_status": self._http_status,
            "retry_after_seconds": self._retry_after_seconds,
            "raw_payload": self._raw_payload,
            "attempts": self._attempts,
            "context": self._context,
            "job_id": self.job_id,
        }
        unknown = set(changes) - set(fields)
        if unknown:
            raise TypeError(f"Unknown ClassifiedError fields: {sorted(unknown)}")
        fields.update(changes)
        clone = ClassifiedError(**fields)
        clone.__cause__ = self.__cause__
        return clone

    def to_dict(self) -> dict[str, Any]:
        """Serialize the classification for logs and API responses."""
        return {
            "message": self._message,
            "category": self._category.value,
            "retryable": self._retryable,
            "http_status": self._http_status,
            "retry_after_seconds": self._retry_after_seconds,
            "attempts": self._attempts,
        }

    def __repr__(self) -> str:
        return (
            f"ClassifiedError(category={self._category.value!r}, "
            f"http_status={self._http_status!r}, retryable={self._retryable!r}, "
            f"message={self._message!r})"
        )


def user_message(error: ClassifiedError) -> str:
    """Map a classified failure to the message shown to the submitter."""
    text = USER_MESSAGES[error.category]
    if error.category is ErrorCategory.USAGE_LIMIT and error.retry_after_seconds:
        text = f"{text} (retry in about {error.retry_after_seconds}s)"
    if error.category is ErrorCategory.CLIENT_FAILURE:
        text = f"{text} {error.message}"
    return text
