"""Bounded exponential backoff with jitter.

One combinator serves both provider stream opening and event delivery.
Delays grow as ``min(base * 2**attempt, max) * (0.5 + rng())``; a retry
whose delay would overrun the policy's soft time budget is not started and
the last error is re-raised instead.

Examples
--------
>>> async def flaky() -> str:
...     return "ok"
>>> await retry_async(flaky, policy=RetryPolicy(), retry_on=(OSError,))
'ok'
"""

from __future__ import annotations

import asyncio
import random
import time
import typing as typ

from aletheia.logging import get_logger, log_debug, log_warning

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from aletheia.config import RetryPolicy

logger = get_logger(__name__)


def backoff_delay(
    policy: RetryPolicy,
    attempt: int,
    rng: cabc.Callable[[], float] = random.random,
) -> float:
    """Return the jittered delay before retry number ``attempt + 1``."""
    capped = min(policy.base_delay * (2**attempt), policy.max_delay)
    return capped * (0.5 + rng())


async def retry_async[T](
    operation: cabc.Callable[[], cabc.Awaitable[T]],
    *,
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...],
    name: str = "operation",
    sleep: cabc.Callable[[float], cabc.Awaitable[None]] = asyncio.sleep,
    rng: cabc.Callable[[], float] = random.random,
    clock: cabc.Callable[[], float] = time.monotonic,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Parameters
    ----------
    operation : Callable[[], Awaitable[T]]
        Zero-argument coroutine factory invoked once per attempt.
    policy : RetryPolicy
        Attempt count, delay bounds, and soft time budget.
    retry_on : tuple[type[BaseException], ...]
        Exception types that trigger another attempt. Anything else
        propagates immediately.
    name : str
        Label used in log records.
    sleep, rng, clock
        Injectable timing sources.

    Returns
    -------
    T
        The first successful result.

    Raises
    ------
    BaseException
        The last retryable error once attempts or the time budget run out,
        or any non-retryable error immediately.
    """
    started = clock()
    attempt = 0
    while True:
        try:
            return await operation()
        except retry_on as exc:
            attempt += 1
            if attempt >= policy.attempts:
                log_warning(
                    logger,
                    "retry.exhausted name=%s attempts=%s error=%s",
                    name,
                    attempt,
                    exc,
                )
                raise
            delay = backoff_delay(policy, attempt - 1, rng)
            elapsed = clock() - started
            if policy.time_budget is not None and elapsed + delay > policy.time_budget:
                log_warning(
                    logger,
                    "retry.budget_exhausted name=%s attempts=%s elapsed=%.3f",
                    name,
                    attempt,
                    elapsed,
                )
                raise
            log_debug(
                logger,
                "retry.scheduled name=%s attempt=%s delay=%.3f error=%s",
                name,
                attempt,
                delay,
                exc,
            )
            await sleep(delay)


__all__ = ("backoff_delay", "retry_async")
