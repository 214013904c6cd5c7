"""Bounded exponential-backoff retry for transient identity provider failures.

Only RATE_LIMITED and NETWORK failures are retried. Everything else fails on
the first attempt. ``times`` counts retries after the first call, so the
default of 2 makes at most 3 calls.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from auth.errors import classify
from auth.types import AuthErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_KINDS = frozenset({AuthErrorKind.RATE_LIMITED, AuthErrorKind.NETWORK})


def is_transient(error: BaseException) -> bool:
    return classify(error).kind in TRANSIENT_KINDS


@dataclass
class RetryPolicy:
    """Retry settings plus the loop that applies them."""

    times: int = 2
    base_delay_seconds: float = 0.4
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Wait before retry number ``attempt + 1`` (attempt is zero-based)."""
        return self.base_delay_seconds * (2 ** attempt)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Await ``operation()`` until it succeeds or a failure is final.

        The last failure is re-raised unchanged.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as exc:
                if not is_transient(exc) or attempt >= self.times:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Transient provider failure (attempt %d/%d), retrying in %.2fs: %s",
                    attempt + 1,
                    self.times + 1,
                    delay,
                    exc,
                )
                await self.sleep(delay)
                attempt += 1


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    times: int = 2,
    base_delay_seconds: float = 0.4,
) -> T:
    """Functional shorthand for ``RetryPolicy(times, base_delay_seconds).run``."""
    return await RetryPolicy(times=times, base_delay_seconds=base_delay_seconds).run(operation)
