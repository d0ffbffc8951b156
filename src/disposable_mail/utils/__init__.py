"""Utility functions for the Disposable Mail client."""

import asyncio
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def retry_async(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[F], F]:
    """Decorator to retry a coroutine function on failure with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts. Zero runs the call once.
        delay: Initial delay between retries in seconds.
        backoff: Multiplier for delay after each retry.
        retry_on: Exception types that trigger a retry; anything else propagates.

    Returns:
        Decorated coroutine function with retry logic.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            current_delay = delay

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_retries:
                        if max_retries:
                            logger.error(
                                "function_retry_exhausted",
                                function=func.__name__,
                                attempts=max_retries + 1,
                                error=str(e),
                            )
                        raise
                    logger.warning(
                        "function_retry",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay=current_delay,
                        error=str(e),
                    )
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff

            raise AssertionError("unreachable")

        return wrapper  # type: ignore

    return decorator
