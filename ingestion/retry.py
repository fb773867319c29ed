"""
Exponential backoff helper for ad hoc re-invocation of a failed sync.

Scheduled jobs never retry in-call; this helper backs the manual
``retry_sync`` operation.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> T:
    """
    Await ``operation()`` up to ``max_retries`` times.

    The wait after failed attempt ``n`` (1-based) is ``base_delay * 2 ** n``
    seconds. The last failure is re-raised unchanged.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    for attempt in range(1, max_retries + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt == max_retries:
                logger.error(f"Giving up after {max_retries} attempts: {e}")
                raise

            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Attempt {attempt}/{max_retries} failed: {e}. Retrying in {delay:.0f} seconds"
            )
            await sleep(delay)
