"""Retry with exponential backoff, passed explicitly to every provider."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """``max_attempts`` tries, sleeping ``base_delay * 2**attempt`` seconds between them.

    Attempts run one after the other. When they are exhausted the last error
    is re-raised unchanged. Only exceptions listed in ``retry_on`` are retried.
    """

    max_attempts: int = 1
    base_delay: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except self.retry_on as e:
                if attempt == self.max_attempts - 1:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s attempt %d/%d failed: %s; retrying in %.1fs",
                    label,
                    attempt + 1,
                    self.max_attempts,
                    e,
                    delay,
                )
                await self.sleep(delay)
        raise RuntimeError(f"All {self.max_attempts} {label} attempts failed")


NO_RETRY = RetryPolicy(max_attempts=1)
