"""Bounded exponential backoff for background remote writes."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


def compute_backoff_delay(attempt: int, base_delay: float, *, max_delay: float = 30.0) -> float:
    """Return ``base_delay * 2**attempt`` capped at ``max_delay``."""
    return min(max_delay, base_delay * (2 ** min(attempt, 10)))


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int = 2,
    base_delay: float = 0.5,
    description: str = "operation",
) -> T:
    """Await ``operation`` up to ``retries + 1`` times, doubling the delay each retry."""
    attempt = 0
    while True:
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception:
            if attempt >= retries:
                raise
            delay = compute_backoff_delay(attempt, base_delay)
            attempt += 1
            logger.warning(
                "%s failed (attempt %d/%d); retrying in %.2fs",
                description,
                attempt,
                retries + 1,
                delay,
                exc_info=True,
            )
            await asyncio.sleep(delay)
