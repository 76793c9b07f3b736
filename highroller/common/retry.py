"""
Exponential backoff for the caller's network layer.

The state machines never retry anything themselves; hosts use this helper to
re-run a failed purchase or credit call.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

logger = logging.getLogger("highroller.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff schedule.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        base_delay: Delay in seconds before the first retry
        max_delay: Upper bound for any single delay
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return min(self.max_delay, self.base_delay * (2**attempt))

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "RetryPolicy":
        config = config or {}
        return cls(
            max_retries=config.get("max_retries", cls.max_retries),
            base_delay=config.get("base_delay", cls.base_delay),
            max_delay=config.get("max_delay", cls.max_delay),
        )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    should_retry: Callable[[T], bool],
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` until ``should_retry`` rejects its result or retries run out.

    Args:
        operation: Zero-argument coroutine function
        policy: Backoff schedule
        should_retry: Predicate on the operation's result
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        The last result produced by ``operation``
    """
    result = await operation()
    attempt = 0
    while should_retry(result) and attempt < policy.max_retries:
        delay = policy.delay_for(attempt)
        attempt += 1
        logger.info(
            f"Retrying operation ({attempt}/{policy.max_retries}) in {delay:.2f}s"
        )
        await sleep(delay)
        result = await operation()
    return result
