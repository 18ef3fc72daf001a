"""Exponential backoff for idempotent reads."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from quizmaster.errors import ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(error: Exception) -> bool:
    """Whether an error is worth retrying. Client errors (4xx) never are."""
    if isinstance(error, ExternalServiceError):
        if error.status is not None and 400 <= error.status < 500:
            return False
        return error.transient
    if isinstance(error, DBAPIError):
        return isinstance(error, OperationalError) or error.connection_invalidated
    return isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError, OSError))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    description: str = "operation",
) -> T:
    """Await ``operation()``, retrying transient failures after 1s, 2s, 4s..."""
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not is_transient(e):
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"{description} failed (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                f"Retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
            attempt += 1
