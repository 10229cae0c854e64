"""Retrying executor for single remote calls.

``retry`` invokes a zero-argument async operation until it succeeds, fails
with a non-transient error, or runs out of attempts. Waits between attempts
use exponential backoff with full jitter; rate-limit errors that carry a
``retry_after`` hint wait for that long instead (capped at ``max_delay``).

Each attempt re-issues the remote call, so operations passed here must be
safe to repeat.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from infrakit.common.context import CallContext
from infrakit.common.errors import (
    OperationCancelledError,
    RateLimitError,
    RetriesExhaustedError,
    is_transient,
)
from infrakit.common.metrics import ClientMetrics, get_metrics

logger = structlog.get_logger()

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings for retried calls.

    Attributes:
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        jitter: Draw the delay uniformly from [0, capped] when True.
    """

    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: bool = True

    def backoff(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Calculate the delay before retrying after ``attempt`` (0-indexed)."""
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return float(min(max(error.retry_after, 0), self.max_delay))
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        if not self.jitter:
            return capped_delay
        return random.uniform(0, capped_delay)


DEFAULT_POLICY = RetryPolicy()


async def retry(
    description: str,
    max_attempts: int,
    operation: Callable[[], Awaitable[T]],
    *,
    context: Optional[CallContext] = None,
    policy: Optional[RetryPolicy] = None,
    metrics: Optional[ClientMetrics] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` with bounded retries on transient errors.

    Args:
        description: Human-readable label used in logs and error messages.
        max_attempts: Maximum number of invocations of ``operation`` (>= 1).
        operation: Zero-argument coroutine function doing one remote attempt.
        context: Cancellation/deadline handle checked before every attempt.
        policy: Backoff policy; defaults to ``DEFAULT_POLICY``.
        metrics: Metrics sink; defaults to the process-wide metrics.
        sleep: Coroutine used to wait between attempts.

    Returns:
        Whatever the first successful attempt returned.

    Raises:
        ValueError: If ``max_attempts`` is less than 1.
        OperationCancelledError: If the context is cancelled or expired,
            chained to the last transient error when there was one.
        RetriesExhaustedError: If every attempt failed transiently.
        Exception: The first non-transient error, unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    context = context or CallContext.background()
    policy = policy or DEFAULT_POLICY
    metrics = metrics or get_metrics()

    last_exception: Optional[Exception] = None

    for attempt in range(max_attempts):
        try:
            context.check(description)
        except OperationCancelledError as e:
            if last_exception is None:
                raise
            raise e from last_exception
        try:
            result = await operation()
        except Exception as e:
            if not is_transient(e):
                metrics.record_attempt("fatal")
                metrics.record_failure(type(e).__name__)
                logger.error(
                    "Non-retryable error",
                    description=description,
                    attempt=attempt + 1,
                    error=str(e),
                )
                raise
            metrics.record_attempt("transient")
            last_exception = e
            if attempt < max_attempts - 1:
                delay = policy.backoff(attempt, e)
                remaining = context.remaining()
                if remaining is not None:
                    delay = min(delay, remaining)
                logger.warning(
                    "Transient error, retrying",
                    description=description,
                    error=str(e),
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    delay=delay,
                )
                await sleep(delay)
            continue
        metrics.record_attempt("success")
        return result

    # All retries exhausted
    metrics.record_failure(RetriesExhaustedError.__name__)
    logger.error(
        "Call failed after all retries",
        description=description,
        max_attempts=max_attempts,
        last_error=str(last_exception),
    )
    raise RetriesExhaustedError(
        description, max_attempts, last_exception
    ) from last_exception
