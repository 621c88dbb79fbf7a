"""
Bounded exponential-backoff retry for a single (provider, model) call.

This is a separate layer from chain fallback: retry absorbs transient
failures of one candidate, chain fallback moves on after permanent ones.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from graph.errors import ProviderError

logger = logging.getLogger("tutor-router.retry")

T = TypeVar("T")

MAX_ATTEMPTS = 3
INITIAL_BACKOFF_MS = 1000
MAX_BACKOFF_MS = 30000
JITTER = 0.2


def calculate_backoff(attempt: int, initial_backoff_ms: float = INITIAL_BACKOFF_MS) -> float:
    """Delay in ms after the given (1-indexed) failed attempt: 1s, 2s, 4s... +/-20%, capped at 30s."""
    delay = initial_backoff_ms * (2 ** (attempt - 1))
    jitter = delay * JITTER * (2 * random.random() - 1)
    return min(delay + jitter, MAX_BACKOFF_MS)


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, ProviderError):
        return exc.is_retryable
    # Raw transport failures that escaped the client (reset, refused, DNS, timeout)
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    return False


def _backoff_wait(initial_backoff_ms: float) -> Callable[[RetryCallState], float]:
    def _wait(retry_state: RetryCallState) -> float:
        return calculate_backoff(retry_state.attempt_number, initial_backoff_ms) / 1000.0
    return _wait


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = MAX_ATTEMPTS,
    initial_backoff_ms: float = INITIAL_BACKOFF_MS,
    operation_name: str = "provider call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run operation up to max_attempts times.

    Retryable failures (429, >=500, timeout, network) are retried after a
    backoff; fatal ones (401/403, invalid response, other 4xx) and the last
    failure once attempts are exhausted are re-raised unchanged.
    """

    def _before_sleep(retry_state: RetryCallState):
        err = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"{operation_name} attempt {retry_state.attempt_number}/{max_attempts} failed, "
            f"retrying in {int(retry_state.next_action.sleep * 1000)}ms: {err}"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=_backoff_wait(initial_backoff_ms),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=_before_sleep,
        sleep=sleep,
        reraise=True,
    )

    attempts = 0

    async def _attempt() -> T:
        nonlocal attempts
        attempts += 1
        return await operation()

    try:
        return await retrying(_attempt)
    except Exception as e:
        logger.error(f"{operation_name} failed after {attempts} attempt(s): {e}")
        raise
