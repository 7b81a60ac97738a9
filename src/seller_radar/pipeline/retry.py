"""
Retry with exponential backoff and jitter for outbound calls.
"""
from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

import requests

from config.settings import settings
from src.seller_radar.pipeline.errors import APIFetchError
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.2


def is_retryable_error(error: BaseException) -> bool:
    """
    Classify an exception as transient.

    Retryable: 5xx and 429 responses, connection failures and timeouts.
    Everything else (other 4xx, validation errors, bugs) fails immediately.
    """
    if isinstance(error, APIFetchError):
        return error.is_retryable

    if isinstance(error, requests.HTTPError):
        status = error.response.status_code if error.response is not None else None
        return status is None or status >= 500 or status == 429

    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True

    return False


def calculate_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    rng: Callable[[], float] = random.random,
) -> float:
    """Backoff delay in seconds for a zero-based attempt, capped, with +/-20% jitter."""
    delay = min(initial_delay * (multiplier ** attempt), max_delay)
    jitter = delay * JITTER_RATIO * (rng() * 2 - 1)
    return max(0.0, delay + jitter)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    initial_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    multiplier: Optional[float] = None,
    retryable: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call ``fn`` until it succeeds, retrying only retryable errors.

    Args:
        fn: Zero-argument coroutine factory.
        max_retries: Retries after the first attempt (defaults from settings).
        initial_delay: First backoff delay in seconds.
        max_delay: Upper bound on any single delay.
        multiplier: Exponential growth factor.
        retryable: Error classifier.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        The first successful result.

    Raises:
        The last error once retries are exhausted, or the first non-retryable error.
    """
    max_retries = settings.http_max_retries if max_retries is None else max_retries
    initial_delay = settings.http_initial_delay_seconds if initial_delay is None else initial_delay
    max_delay = settings.http_max_delay_seconds if max_delay is None else max_delay
    multiplier = settings.http_backoff_multiplier if multiplier is None else multiplier

    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if not retryable(e) or attempt >= max_retries:
                raise

            delay = calculate_delay(attempt, initial_delay, max_delay, multiplier)
            logger.warning(
                "retrying_after_error",
                attempt=attempt + 1,
                max_retries=max_retries,
                delay_seconds=round(delay, 3),
                error=str(e),
            )
            await sleep(delay)
            attempt += 1
