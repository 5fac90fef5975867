"""Retry backoff with a fixed escalating schedule and jitter.

The schedule is a fixed sequence (0.5s, 1s, 2s, 4s, capped at the last
entry) plus uniform random jitter to desynchronize concurrent retrying
callers.

Example:
    >>> config = RetryConfig(max_retries=2)
    >>> config.delay_for(0)  # 0.5s + up to 0.2s jitter
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Callable, Optional

from invoice_pipeline.core.config import (
    BACKOFF_JITTER_SECONDS,
    BACKOFF_SCHEDULE_SECONDS,
    LLM_MAX_RETRIES,
)
from invoice_pipeline.core.settings import PipelineSettings


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry logic.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        schedule_seconds: Base delay per retry index; the last entry is the cap
        jitter_seconds: Upper bound of the random delay added to each wait
        random_fn: Source of randomness in [0, 1), injectable for tests
    """

    max_retries: int = LLM_MAX_RETRIES
    schedule_seconds: tuple[float, ...] = BACKOFF_SCHEDULE_SECONDS
    jitter_seconds: float = BACKOFF_JITTER_SECONDS
    random_fn: Callable[[], float] = field(default=random.random, compare=False)

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "RetryConfig":
        """Retry budget and jitter from settings; the schedule stays fixed."""
        return cls(
            max_retries=settings.LLM_MAX_RETRIES,
            jitter_seconds=settings.BACKOFF_JITTER_SECONDS,
        )

    def delay_for(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index`` (0-based)."""
        if not self.schedule_seconds:
            base = 0.0
        else:
            base = self.schedule_seconds[min(retry_index, len(self.schedule_seconds) - 1)]
        return base + self.random_fn() * self.jitter_seconds

    def should_retry(self, retry_index: int, max_retries: Optional[int] = None) -> bool:
        budget = self.max_retries if max_retries is None else max_retries
        return retry_index < budget


async def sleep_or_cancel(
    delay_seconds: float, cancel_event: Optional[asyncio.Event] = None
) -> bool:
    """Sleep for ``delay_seconds``; return False early if ``cancel_event`` fires."""
    if cancel_event is None:
        await asyncio.sleep(delay_seconds)
        return True
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay_seconds)
    except asyncio.TimeoutError:
        return True
    return False
