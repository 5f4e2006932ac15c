"""HTTP helpers with retry/backoff for collaborator APIs."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

import httpx

from everease.core.exceptions import DependencyError

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}


def backoff_delay(attempt: int, *, base_delay: float, max_delay: float) -> float:
    """Exponential delay for the given zero-based attempt, with up to 50% jitter."""
    delay = min(max_delay, base_delay * (2**attempt))
    if delay:
        delay = delay + random.uniform(0, delay / 2)
    return delay


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    service: str,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: set[int] | None = None,
) -> httpx.Response:
    """
    Execute an HTTP request with exponential backoff retries.

    Transport errors that survive every attempt become DependencyError naming
    the collaborator. Non-retryable HTTP statuses are returned to the caller.
    """
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES
    response: httpx.Response | None = None

    for attempt in range(max_attempts):
        last_attempt = attempt >= max_attempts - 1
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if last_attempt:
                logger.error("%s request failed after %d attempts", service, max_attempts)
                raise DependencyError(f"{service} is unreachable") from exc
            logger.warning("%s request failed, retrying", service, exc_info=exc)
            await asyncio.sleep(backoff_delay(attempt, base_delay=base_delay, max_delay=max_delay))
            continue

        if response.status_code in statuses and not last_attempt:
            logger.warning("%s returned %s, retrying", service, response.status_code)
            await asyncio.sleep(backoff_delay(attempt, base_delay=base_delay, max_delay=max_delay))
            continue

        return response

    return response  # type: ignore[return-value]
