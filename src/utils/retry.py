"""Retry utilities with exponential backoff."""

import asyncio
import inspect
import time
from functools import wraps
from typing import Callable, Tuple, Type

import structlog

log = structlog.stdlib.get_logger()


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (zero-based), capped at ``max_delay``."""
    return min(base_delay * (2**attempt), max_delay)


def exponential_backoff_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
) -> Callable:
    """
    Decorator that retries a function with exponential backoff.

    Works for plain functions and coroutine functions. Coroutines sleep with
    ``asyncio.sleep`` so other tasks keep running between attempts, and
    cancellation is never retried.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exceptions: Tuple of exception types to catch and retry

    Returns:
        Decorated function with retry logic
    """

    def _log_retry(func: Callable, attempt: int, delay: float, e: Exception) -> None:
        log.warning(
            "retrying_after_error",
            function=func.__name__,
            attempt=attempt + 1,
            max_retries=max_retries,
            delay_seconds=delay,
            error=str(e),
        )

    def _log_exhausted(func: Callable, e: Exception) -> None:
        log.error(
            "max_retries_reached",
            function=func.__name__,
            max_retries=max_retries,
            error=str(e),
        )

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                for attempt in range(max_retries + 1):
                    try:
                        return await func(*args, **kwargs)
                    except exceptions as e:
                        if attempt == max_retries:
                            _log_exhausted(func, e)
                            raise

                        delay = backoff_delay(attempt, base_delay, max_delay)
                        _log_retry(func, attempt, delay, e)
                        await asyncio.sleep(delay)

            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        _log_exhausted(func, e)
                        raise

                    delay = backoff_delay(attempt, base_delay, max_delay)
                    _log_retry(func, attempt, delay, e)
                    time.sleep(delay)

        return wrapper

    return decorator
