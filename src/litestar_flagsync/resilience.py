"""Retry helpers shared by the client transport and the push loop."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

__all__ = ["RetryPolicy", "resilient_call"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING: Any = object()


@dataclass
class RetryPolicy:
    """Capped exponential backoff with optional jitter.

    Attributes:
        max_retries: Retries after the first attempt; ``None`` retries forever.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound of the backoff in seconds.
        exponential_backoff: Double the delay on every attempt.
        jitter: Add up to 25% random delay to spread reconnect storms.
        retryable_exceptions: Exception types worth retrying.

    Example:
        >>> policy = RetryPolicy(base_delay=0.5, max_delay=30.0, jitter=False)
        >>> policy.get_delay(2)
        2.0

    """

    max_retries: int | None = 3
    base_delay: float = 0.1
    max_delay: float = 2.0
    exponential_backoff: bool = True
    jitter: bool = True
    retryable_exceptions: tuple[type[BaseException], ...] = field(
        default=(ConnectionError, TimeoutError, OSError),
    )

    def get_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (0-based)."""
        delay = self.base_delay * (2**attempt) if self.exponential_backoff else self.base_delay
        delay = min(delay, self.max_delay)
        if self.jitter:
            delay += delay * random.uniform(0, 0.25)  # noqa: S311
        return delay

    def should_retry(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retryable_exceptions)

    def can_retry(self, attempt: int) -> bool:
        return self.max_retries is None or attempt < self.max_retries


async def resilient_call(
    func: Callable[[], Awaitable[T]],
    retry_policy: RetryPolicy | None = None,
    default: Any = _MISSING,
) -> T:
    """Call an async function, retrying retryable failures.

    Args:
        func: Zero-argument coroutine function.
        retry_policy: Retry policy; no retries when omitted.
        default: Returned instead of raising when the call finally fails.

    Returns:
        The function result, or ``default``.

    """
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as exc:
            if retry_policy is not None and retry_policy.should_retry(exc) and retry_policy.can_retry(attempt):
                delay = retry_policy.get_delay(attempt)
                logger.debug("Attempt %d failed with %r, retrying in %.2fs", attempt + 1, exc, delay)
                attempt += 1
                await asyncio.sleep(delay)
                continue
            if default is not _MISSING:
                logger.debug("Call failed with %r, returning default", exc)
                return default
            raise
