"""
Resilient remote calls

Retries rate-limited operations with exponential backoff. Every language
model call in the search pipeline goes through the same policy.

Policy:
- attempt N fails with a rate-limit error -> wait base_delay * 2**(N-1), retry
- any other error -> re-raised immediately, no retry
- all attempts rate-limited -> RetryExhaustedError chained from the last one
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import RetryExhaustedError

logger = logging.getLogger("taskfinder.common.retry")

T = TypeVar("T")

RATE_LIMIT_STATUS = 429
RATE_LIMIT_CODES = {"rate_limit_exceeded", "rate_limit_error", "resource_exhausted"}
RATE_LIMIT_PHRASES = ("rate limit", "rate_limit", "too many requests")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings shared by every call site"""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after a failed attempt (1-based)"""
        return self.base_delay * 2 ** (attempt - 1)


def is_rate_limit_error(error: BaseException) -> bool:
    """
    Check whether an exception signals a rate limit.

    Works across provider SDKs: openai and anthropic expose ``status_code``,
    google-api-core exceptions carry an integer ``code``, some HTTP clients
    use ``status``. String error codes and messages are matched last.
    """
    for attr in ("status_code", "status", "code"):
        status = getattr(error, attr, None)
        if status == RATE_LIMIT_STATUS:
            return True

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.lower() in RATE_LIMIT_CODES:
        return True

    message = str(error).lower()
    return any(phrase in message for phrase in RATE_LIMIT_PHRASES)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    is_retryable: Callable[[BaseException], bool] = is_rate_limit_error,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` under ``policy``.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        policy: Attempt cap and base delay
        is_retryable: Predicate selecting errors worth retrying
        sleep: Awaitable delay function (injectable for tests)

    Returns:
        The operation's result

    Raises:
        RetryExhaustedError: every attempt failed with a retryable error
        Exception: the first non-retryable error, unchanged
    """
    policy = policy or RetryPolicy()
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e):
                raise
            last_error = e
            if attempt == policy.max_attempts:
                break
            delay = policy.delay_for(attempt)
            logger.debug(
                "Rate limited (attempt %d/%d), retrying in %.2fs: %s",
                attempt, policy.max_attempts, delay, e,
            )
            await sleep(delay)

    logger.warning("Giving up after %d rate-limited attempts", policy.max_attempts)
    raise RetryExhaustedError(
        f"Rate limited on all {policy.max_attempts} attempts: {last_error}",
        attempts=policy.max_attempts,
        last_error=last_error,
    ) from last_error


class ResilientCaller:
    """
    Callable wrapper binding a retry policy to remote operations.

    Usage:
        caller = ResilientCaller(RetryPolicy(max_attempts=3, base_delay=1.0))
        reply = await caller.call(lambda: llm.complete(messages))
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        is_retryable: Callable[[BaseException], bool] = is_rate_limit_error,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._is_retryable = is_retryable
        self._sleep = sleep

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await with_retry(
            operation,
            self.policy,
            is_retryable=self._is_retryable,
            sleep=self._sleep,
        )
