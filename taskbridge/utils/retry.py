"""
Bounded retries for outbound HTTP calls.

The provider client wraps every request in retry_with_backoff. Only errors the
caller classifies as transient are retried; the last error is re-raised once
the attempts are used up so callers see the real status and body.
"""

import asyncio
import logging
import random
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


async def retry_with_backoff(
    func: Callable,
    *args,
    max_retries: int = 2,
    base_delay: float = 0.3,
    max_delay: float = 10.0,
    jitter: bool = False,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    retry_if: Optional[Callable[[Exception], bool]] = None,
    **kwargs
) -> Any:
    """
    Await func(*args, **kwargs), retrying transient failures.

    Args:
        func: Coroutine function to call
        max_retries: Extra attempts after the first one
        base_delay: Delay before the first retry, doubled on each later one
        max_delay: Upper bound for a single delay
        jitter: Scale each delay by a random factor in [0.5, 1.5)
        retry_on: Exception types that may be retried
        retry_if: Predicate deciding whether a caught error is transient

    Example:
        await retry_with_backoff(
            client._request_once, "GET", "/v1/tasks/t1",
            retry_on=(TaskProviderError,),
            retry_if=lambda e: e.retryable,
        )
    """
    name = getattr(func, "__name__", repr(func))
    attempts = max_retries + 1

    for attempt in range(1, attempts + 1):
        try:
            result = await func(*args, **kwargs)
        except retry_on as e:
            if retry_if is not None and not retry_if(e):
                raise
            if attempt == attempts:
                logger.error(f"{name} failed after {attempts} attempt(s): {e}")
                raise

            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            if jitter:
                delay *= 0.5 + random.random()
            logger.warning(f"{name} attempt {attempt}/{attempts} failed ({e}); retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
        else:
            if attempt > 1:
                logger.info(f"{name} succeeded on attempt {attempt}/{attempts}")
            return result


# Provider calls: 3 attempts, 0.3s then 0.6s
PROVIDER_RETRY = {
    "max_retries": 2,
    "base_delay": 0.3,
    "max_delay": 10.0,
}
