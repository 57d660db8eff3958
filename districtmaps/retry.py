"""Sequential retry of one unit of work, logging every failed attempt."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger("districtmaps.retry")


async def run_with_retries(
    label: str,
    attempt: Callable[[], Awaitable[Any]],
    max_attempts: int = 3,
) -> bool:
    """
    Run ``attempt`` up to ``max_attempts`` times, back to back.

    Failures are logged, never raised, so one period cannot abort the batch.
    Returns True once an attempt succeeds.
    """
    for i in range(1, max_attempts + 1):
        try:
            await attempt()
            return True
        except Exception:
            logger.exception(
                "Attempt %d/%d for %s failed%s",
                i,
                max_attempts,
                label,
                ", retrying..." if i < max_attempts else "",
            )

    logger.error("%s failed permanently after %d attempts", label, max_attempts)
    return False
