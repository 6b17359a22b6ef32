from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 4,
    base_delay: float = 1.0,
    is_retryable: Callable[[Exception], bool] = lambda e: True,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await `operation` until it succeeds, backing off exponentially between
    attempts (base_delay, 2*base_delay, 4*base_delay, ...).

    The last error is re-raised when it is not retryable or when the attempt
    budget is spent. Nothing is remembered between calls.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(max_attempts):
        try:
            return await operation()
        except Exception as e:
            if attempt == max_attempts - 1 or not is_retryable(e):
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "retryable error, retrying in %.2fs (attempt %d/%d): %s",
                delay,
                attempt + 1,
                max_attempts - 1,
                e,
            )
            await sleep(delay)
