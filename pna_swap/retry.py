"""
Retry policy shared by every LP call site.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Awaitable, Any

from .errors import TransportError

log = logging.getLogger(__name__)


def is_retryable(exc: BaseException) -> bool:
    """Transport failures (timeouts, connection errors, 5xx, 429) only."""
    return isinstance(exc, TransportError)


def linear_backoff(step: float) -> Callable[[int], float]:
    """Delay before retry N is N * step seconds."""
    return lambda attempt: attempt * step


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=lambda: linear_backoff(3.0))
    retryable: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    async def run(self, fn: Callable[..., Awaitable[Any]], *args,
                  describe: str = "request", **kwargs) -> Any:
        """Await fn(*args, **kwargs), retrying retryable errors.

        The last error is re-raised once attempts are exhausted.
        """
        attempt = 1
        while True:
            try:
                return await fn(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_attempts or not self.retryable(e):
                    raise
                delay = self.backoff(attempt)
                log.warning(f"{describe} failed (attempt {attempt}/{self.max_attempts}): {e}; "
                            f"retrying in {delay:.1f}s")
                await self.sleep(delay)
                attempt += 1


# Quotes and info: one shot, stale data is replaced by the next refresh
NO_RETRY = RetryPolicy(max_attempts=1)
