"""Retry logic for transient acquisition failures.

Supports both the fixed inter-attempt delay used for media downloads and
exponential backoff. Respects the `retryable` attribute of AcquisitionError
subclasses.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from .exceptions import AcquisitionError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

RetryCallback = Callable[[int, Exception], None]


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    backoff_factor: float,
    jitter: bool,
) -> float:
    """Delay before the attempt following ``attempt`` (1-based).

    ``backoff_factor=1.0`` gives a fixed delay of ``base_delay``.
    """
    delay = min(base_delay * (backoff_factor ** (attempt - 1)), max_delay)
    if jitter:
        delay = delay * (0.5 + random.random())
    return delay


async def retry_async(
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    on_retry: RetryCallback | None = None,
    **kwargs: P.kwargs,
) -> T:
    """Retry an async function.

    Non-retryable AcquisitionErrors are raised immediately; any other
    exception is retried until the attempt budget is spent.

    Args:
        func: Async function to call.
        *args: Positional arguments for func.
        max_attempts: Total number of attempts (default 3).
        base_delay: Delay after the first failure in seconds (default 1.0).
        max_delay: Maximum delay cap in seconds (default 60.0).
        backoff_factor: Delay multiplier per attempt; 1.0 keeps it fixed.
        jitter: Add random jitter to delays (default True).
        on_retry: Called with (failed attempt number, exception) before
            each retry.
        **kwargs: Keyword arguments for func.

    Returns:
        Result from successful func call.

    Raises:
        Exception: The last exception if all attempts fail, or a
            non-retryable error.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if isinstance(e, AcquisitionError) and not e.retryable:
                logger.debug(
                    "Non-retryable error on attempt %d/%d: %s",
                    attempt,
                    max_attempts,
                    e,
                )
                raise

            if attempt == max_attempts:
                logger.warning(
                    "All %d attempts failed for %s: %s",
                    max_attempts,
                    getattr(func, "__name__", repr(func)),
                    e,
                )
                raise

            delay = compute_delay(attempt, base_delay, max_delay, backoff_factor, jitter)
            logger.info(
                "Attempt %d/%d failed for %s, retrying in %.2fs: %s",
                attempt,
                max_attempts,
                getattr(func, "__name__", repr(func)),
                delay,
                e,
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error: no attempts made")
