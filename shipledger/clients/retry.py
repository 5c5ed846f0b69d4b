"""Backoff for the GraphQL clients.

A call is retried when ShipHero or Shopify answers 429/5xx or the connection
fails. The server's Retry-After wins over the computed delay.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def _transient_reason(exc: Exception) -> tuple[str, httpx.Response | None] | None:
    """Describe a retryable failure, or None when ``exc`` should propagate."""
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code in RETRYABLE_STATUS_CODES:
            return f"HTTP {exc.response.status_code}", exc.response
        return None
    if isinstance(exc, httpx.TransportError):
        return f"connection error: {type(exc).__name__}", None
    return None


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: float = 0.3,
) -> Callable:
    """Wrap a coroutine function so transient HTTP failures are retried.

    The wrapped call runs at most ``max_retries + 1`` times; the last failure
    is re-raised unchanged.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return await fn(*args, **kwargs)
                except (httpx.HTTPStatusError, httpx.TransportError) as exc:
                    transient = _transient_reason(exc)
                    if transient is None or attempt >= max_retries:
                        raise
                    reason, response = transient
                    delay = _compute_delay(attempt, base_delay, max_delay, jitter, response)
                    attempt += 1
                    logger.warning(
                        "%s failed (%s), retry %d/%d in %.1fs",
                        fn.__qualname__,
                        reason,
                        attempt,
                        max_retries,
                        delay,
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator


def _compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float,
    response: httpx.Response | None = None,
) -> float:
    retry_after = response.headers.get("Retry-After") if response is not None else None
    if retry_after:
        try:
            return min(float(retry_after), max_delay)
        except ValueError:
            logger.debug("Ignoring non-numeric Retry-After: %r", retry_after)

    delay = min(base_delay * 2**attempt, max_delay)
    spread = delay * jitter
    return max(0.0, delay + random.uniform(-spread, spread))
