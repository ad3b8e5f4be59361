"""Retry decorator for handling Linear API rate limits and transient errors.

This module provides a decorator that implements capped retry logic for Linear
API reads, including respect for rate limit hints and exponential backoff.
Mutations must not be decorated: retrying a create after an ambiguous failure
could produce a duplicate issue.
"""

import asyncio
import functools
import random
from typing import Any, Callable, TypeVar

import structlog

from mo_linear.linear.exceptions import LinearAPIError, LinearRateLimitError

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_MAX_RETRIES = 3

RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


def _is_transient(error: LinearAPIError) -> bool:
    """Whether a non-rate-limit error is worth retrying."""
    if error.status_code is None:
        # Network-level failure (timeout, connection reset).
        return error.code in ("TIMEOUT", "NETWORK_ERROR")
    return error.status_code in RETRYABLE_STATUS_CODES


def retry_on_rate_limit(
    max_retries: int | None = None,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: float = 0.2,
) -> Callable[[F], F]:
    """Decorator for retrying async read operations when they hit Linear rate limits.

    This decorator handles:
    - Linear rate limit errors (HTTP 429 or the RATELIMITED error code)
    - Transient gateway errors and network timeouts
    - Respects the retry-after hint carried by the rate limit error
    - Implements exponential backoff with jitter for everything else

    Args:
        max_retries: Maximum number of retry attempts. When None, the bound
            instance's ``max_retries`` attribute is used, falling back to 3.
        initial_delay: Initial delay in seconds between retries (default: 1.0)
        max_delay: Maximum delay in seconds between retries (default: 30.0)
        exponential_base: Base for exponential backoff calculation (default: 2.0)
        jitter: Fraction of the delay randomly added or removed (default: 0.2)

    Returns:
        Decorated function with retry logic

    Example:
        @retry_on_rate_limit()
        async def list_teams(self):
            return await self.execute(TEAMS_QUERY)
    """

    def decorator(func: F) -> F:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"Function {func.__name__} decorated with @retry_on_rate_limit must be async.")

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            retries = max_retries
            if retries is None:
                retries = getattr(args[0], "max_retries", DEFAULT_MAX_RETRIES) if args else DEFAULT_MAX_RETRIES
            delay = initial_delay

            for attempt in range(retries + 1):
                try:
                    return await func(*args, **kwargs)
                except LinearRateLimitError as e:
                    if attempt == retries:
                        logger.error(
                            "Max retries reached for Linear rate limit error",
                            function=func.__name__,
                            attempt=attempt + 1,
                            retry_after=e.retry_after,
                        )
                        raise
                    wait_time = min(e.retry_after if e.retry_after else delay, max_delay)
                    logger.warning(
                        f"Linear rate limit exceeded, waiting {wait_time} seconds",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=retries,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    delay = min(delay * exponential_base, max_delay)
                except LinearAPIError as e:
                    if not _is_transient(e):
                        raise
                    if attempt == retries:
                        logger.error(
                            "Max retries reached for transient Linear error",
                            function=func.__name__,
                            attempt=attempt + 1,
                            status_code=e.status_code,
                            error=str(e),
                        )
                        raise
                    wait_time = min(delay * (1 + random.uniform(-jitter, jitter)), max_delay)
                    logger.warning(
                        f"Transient Linear error, retrying in {wait_time:.2f} seconds",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=retries,
                        wait_time=wait_time,
                        status_code=e.status_code,
                    )
                    await asyncio.sleep(wait_time)
                    delay = min(delay * exponential_base, max_delay)

        return async_wrapper  # type: ignore

    return decorator
