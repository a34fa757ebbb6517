"""Retry logic with exponential backoff."""

import functools
import time
from typing import Callable, Optional, Tuple, Type

import structlog

logger = structlog.get_logger(__name__)


def retry_with_backoff(
    retries: int = 3,
    delays: Optional[Tuple[float, ...]] = None,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
) -> Callable:
    """
    Decorator for retrying a function with exponential backoff.

    Args:
        retries: Number of retries after the first attempt (default: 3)
        delays: Delay in seconds before each retry (default: 1, 2, 4, ...)
        exceptions: Exception types that trigger a retry; anything else
            propagates immediately

    Example:
        @retry_with_backoff(retries=2, delays=(0.5, 1.0),
                            exceptions=(requests.ConnectionError,))
        def lookup():
            return requests.get(url, timeout=15)
    """
    if delays is None:
        delays = tuple(2**i for i in range(retries))
    elif len(delays) < retries:
        # Pad delays with the last value if not enough provided
        delays = delays + (delays[-1],) * (retries - len(delays))

    def decorator(func: Callable) -> Callable:
        name = getattr(func, "__qualname__", repr(func))

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == retries:
                        raise
                    delay = delays[attempt]
                    logger.warning(
                        "retrying",
                        function=name,
                        attempt=attempt + 1,
                        delay=delay,
                        error=str(e),
                    )
                    time.sleep(delay)

        return wrapper

    return decorator
