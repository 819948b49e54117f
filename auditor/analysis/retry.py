"""Exponential-backoff retry shared by every external call.

The batch dispatcher, the narrative synthesis step and the crawler all go
through :func:`retry_async` with their own :class:`RetryPolicy`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from auditor.errors import RetryExhausted, TransientExternalError

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 3.0
    multiplier: float = 1.5
    max_delay: float = 10.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1; got {self.max_attempts}")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (TransientExternalError,),
    sleep: Sleep = asyncio.sleep,
    logger: logging.Logger | None = None,
    label: str = "call",
) -> T:
    """Await ``fn()`` up to ``policy.max_attempts`` times.

    Only exceptions matching *retry_on* are retried; anything else
    propagates immediately.  Cancellation is never swallowed.

    Raises:
        RetryExhausted: After the last attempt fails; ``last_error`` holds
            the final exception.
    """
    log = logger or logging.getLogger(__name__)
    last_error: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await fn()
        except retry_on as exc:
            last_error = exc
            if attempt == policy.max_attempts:
                log.warning(
                    "[RETRY] %s failed on final attempt %d/%d: %s",
                    label, attempt, policy.max_attempts, exc,
                )
                break
            delay = policy.delay_for(attempt)
            log.info(
                "[RETRY] %s failed (attempt %d/%d): %s; retrying in %.1fs",
                label, attempt, policy.max_attempts, exc, delay,
            )
            await sleep(delay)

    raise RetryExhausted(policy.max_attempts, last_error)  # type: ignore[arg-type]
