from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional

from ..constants import DEFAULT_BACKOFF_BASE

Sleep = Callable[[float], Awaitable[None]]


def compute_backoff(
    attempt: int,
    base: float = DEFAULT_BACKOFF_BASE,
    jitter: float = 0.0,
    max_delay: Optional[float] = None,
) -> float:
    """Compute exponential backoff (``base ** attempt`` seconds) with optional jitter."""
    delay = base ** attempt
    if jitter:
        delay += random.uniform(0, jitter)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


async def schedule_retry(
    attempt: int, base: float = DEFAULT_BACKOFF_BASE, sleep: Optional[Sleep] = None
) -> float:
    """Sleep for the computed backoff before retrying; returns the delay used."""
    delay = compute_backoff(attempt, base=base)
    await (sleep or asyncio.sleep)(delay)
    return delay
