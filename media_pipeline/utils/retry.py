"""Retry policy with classification-aware exponential backoff.

Every failure is classified (see utils.classifier) before deciding:
billing failures are never retried, network failures follow a short
fixed schedule with their own cap, and usage-limit/server failures
back off exponentially up to a maximum delay.

Two layers are used around each external call: FAST_RETRY absorbs brief
blips with sub-second waits, SLOW_RETRY waits out per-minute quotas.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, TypeVar

from media_pipeline.utils.classifier import classify_exception, parse_retry_after
from media_pipeline.utils.errors import ClassifiedError, ErrorCategory

logger = logging.getLogger(__name__)

T = TypeVar("T")

NETWORK_UNAVAILABLE_STATUS = 503


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for one retry layer.

    Attributes:
        max_retries: Retries allowed for usage-limit and server failures.
        base_delay: Delay in seconds before the first such retry; doubles
            on each further retry.
        max_delay: Upper bound for the exponential delay.
        network_delays: Fixed schedule for network failures, indexed by
            retry number. The last entry is reused once exhausted.
        network_max_retries: Retries allowed for network failures.
    """

    max_retries: int = 2
    base_delay: float = 0.5
    max_delay: float = 1.0
    network_delays: tuple[float, ...] = (0.3, 0.6, 0.9)
    network_max_retries: int = 3

    def delay_for(self, error: ClassifiedError, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based) of ``error``."""
        if error.category is ErrorCategory.NETWORK_FAILURE:
            index = min(attempt, len(self.network_delays) - 1)
            return self.network_delays[index]
        return min(self.base_delay * (2**attempt), self.max_delay)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        context: str = "operation",
    ) -> T:
        """Run ``operation`` and retry it according to this policy.

        Args:
            operation: Zero-argument callable returning an awaitable.
            max_retries: Overrides the policy's retry limit for usage-limit
                and server failures.
            context: Operation name used in logs and on the raised error.

        Returns:
            Whatever ``operation`` returns on its first successful call.

        Raises:
            ClassifiedError: The last failure, annotated with the number of
                calls made and any retry-after hint, once retries are
                exhausted or the failure is not retryable.
        """
        limit = self.max_retries if max_retries is None else max_retries
        retries = 0
        network_retries = 0
        calls = 0

        while True:
            try:
                return await operation()
            except Exception as exc:
                error = classify_exception(exc, context)
                calls += error.attempts if exc is error else 1

                if error.category is ErrorCategory.BILLING_QUOTA:
                    logger.error(
                        "%s failed: billing failure (not retryable): %s",
                        context,
                        error.message,
                        extra={"category": error.category.value},
                    )
                    final = self._finalize(error, calls, context)
                    raise final from final.__cause__

                if error.category is ErrorCategory.NETWORK_FAILURE:
                    attempt = network_retries
                    allowed = self.network_max_retries
                    can_retry = network_retries < self.network_max_retries
                else:
                    attempt = retries
                    allowed = limit
                    can_retry = error.retryable and retries < limit

                if not can_retry:
                    final = self._finalize(error, calls, context)
                    raise final from final.__cause__

                delay = self.delay_for(error, attempt)
                logger.warning(
                    "Retry %d/%d for %s after %.1fs (%s): %s",
                    attempt + 1,
                    allowed,
                    context,
                    delay,
                    error.category.value,
                    error.message,
                    extra={"category": error.category.value, "attempt": calls},
                )
                await asyncio.sleep(delay)

                if error.category is ErrorCategory.NETWORK_FAILURE:
                    network_retries += 1
                else:
                    retries += 1

    def _finalize(
        self, error: ClassifiedError, calls: int, context: str
    ) -> ClassifiedError:
        retry_after = error.retry_after_seconds
        if retry_after is None:
            retry_after = parse_retry_after(None, error.message)

        http_status = error.http_status
        if http_status is None and error.category is ErrorCategory.NETWORK_FAILURE:
            http_status = NETWORK_UNAVAILABLE_STATUS

        return error.replace(
            attempts=calls,
            retry_after_seconds=retry_after,
            http_status=http_status,
            context=error.context or context,
        )


FAST_RETRY = RetryPolicy(max_retries=2, base_delay=0.5, max_delay=1.0)
# Network failures are retried by the inner layer only
SLOW_RETRY = RetryPolicy(
    max_retries=6, base_delay=3.0, max_delay=96.0, network_max_retries=0
)


async def execute_with_retries(
    operation: Callable[[], Awaitable[T]],
    context: str = "operation",
    inner: RetryPolicy = FAST_RETRY,
    outer: RetryPolicy = SLOW_RETRY,
) -> T:
    """Run ``operation`` under the fast inner layer and the slow outer layer."""

    async def attempt() -> T:
        return await inner.execute(operation, context=context)

    return await outer.execute(attempt, context=context)


def retry_with_backoff(
    policy: RetryPolicy | None = None,
    context: str | None = None,
) -> Callable:
    """Decorator for retrying async functions under a RetryPolicy.

    Args:
        policy: Retry settings (default FAST_RETRY).
        context: Name used in logs (default: the function name).

    Returns:
        Decorator that wraps an async function with retry logic.
    """
    active = policy or FAST_RETRY

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await active.execute(
                lambda: func(*args, **kwargs),
                context=context or func.__name__,
            )

        return wrapper

    return decorator
