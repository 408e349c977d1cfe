"""Retry utilities with tenacity."""

import asyncio
import logging
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    after_log,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from ..config import settings
from ..models import AIError

logger = logging.getLogger(__name__)


def is_retryable_error(error: BaseException) -> bool:
    """Only AI errors flagged retryable are attempted again."""
    return isinstance(error, AIError) and error.is_retryable


class wait_retry_after(wait_base):
    """Honor a server-suggested delay, otherwise defer to exponential backoff."""

    def __init__(self, fallback: wait_base):
        self.fallback = fallback

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            error = outcome.exception()
            if isinstance(error, AIError) and error.retry_after is not None:
                return float(error.retry_after)
        return self.fallback(retry_state)


def create_async_retrying(
    max_attempts: int | None = None,
    base_delay: float | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> AsyncRetrying:
    """
    Create an async retry controller for provider calls.

    Args:
        max_attempts: Total attempts including the first (default from settings)
        base_delay: Delay before the second attempt, doubled each time after
        sleep: Awaitable sleep function, injectable for tests

    Returns:
        AsyncRetrying that re-raises the last error once attempts run out
    """
    if max_attempts is None:
        max_attempts = settings.llm_max_retries

    if base_delay is None:
        base_delay = settings.llm_retry_base_delay

    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_retry_after(wait_exponential(multiplier=base_delay, exp_base=2, min=0)),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        sleep=sleep or asyncio.sleep,
        reraise=True,
    )


def log_retry_success(func_name: str, attempt: int, total_attempts: int) -> None:
    """Log successful retry."""
    if attempt > 1:
        logger.info(f"{func_name} succeeded on attempt {attempt}/{total_attempts}")
