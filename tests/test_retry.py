"""Unit tests for bounded exponential backoff.

Examples
--------
Run the retry tests:

>>> pytest tests/test_retry.py
"""

from __future__ import annotations

import pytest

from aletheia.chat.errors import ProviderError, TransientProviderError
from aletheia.chat.retry import backoff_delay, retry_async
from aletheia.config import RetryPolicy


class _Flaky:
    """Operation failing a fixed number of times before succeeding."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or TransientProviderError("busy")
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _half() -> float:
    return 0.5


def _frozen_clock() -> float:
    return 0.0


def test_backoff_delay_grows_and_caps() -> None:
    """Delays double per attempt up to the cap, scaled by jitter."""
    policy = RetryPolicy(base_delay=0.1, max_delay=1.0)

    delays = [backoff_delay(policy, attempt, _half) for attempt in range(6)]

    assert delays == pytest.approx([0.1, 0.2, 0.4, 0.8, 1.0, 1.0]), (
        "Expected exponential growth capped at max_delay."
    )


def test_backoff_jitter_spans_half_to_one_and_a_half() -> None:
    """Jitter scales the capped delay between 0.5x and 1.5x."""
    policy = RetryPolicy(base_delay=1.0, max_delay=10.0)

    assert backoff_delay(policy, 0, lambda: 0.0) == pytest.approx(0.5)
    assert backoff_delay(policy, 0, lambda: 1.0) == pytest.approx(1.5)


@pytest.mark.asyncio
async def test_retry_succeeds_after_transient_failures() -> None:
    """Transient failures are retried with growing delays."""
    operation = _Flaky(failures=2)
    sleeps = _Sleeps()
    policy = RetryPolicy(attempts=3, base_delay=0.1, max_delay=1.0, time_budget=None)

    result = await retry_async(
        operation,
        policy=policy,
        retry_on=(TransientProviderError,),
        sleep=sleeps,
        rng=_half,
    )

    assert result == "ok", "Expected the third attempt to succeed."
    assert operation.calls == 3, "Expected three attempts."
    assert sleeps.delays == pytest.approx([0.1, 0.2]), "Expected two backoff delays."


@pytest.mark.asyncio
async def test_retry_reraises_when_attempts_run_out() -> None:
    """The last error propagates once attempts are exhausted."""
    operation = _Flaky(failures=10)
    sleeps = _Sleeps()
    policy = RetryPolicy(attempts=3, base_delay=0.0, time_budget=None)

    with pytest.raises(TransientProviderError):
        await retry_async(
            operation, policy=policy, retry_on=(TransientProviderError,), sleep=sleeps
        )

    assert operation.calls == 3, "Expected exactly three attempts."
    assert len(sleeps.delays) == 2, "Expected a delay between each attempt."


@pytest.mark.asyncio
async def test_non_retryable_errors_propagate_immediately() -> None:
    """Errors outside ``retry_on`` are never retried."""
    operation = _Flaky(failures=1, error=ProviderError("bad request"))
    sleeps = _Sleeps()

    with pytest.raises(ProviderError):
        await retry_async(
            operation,
            policy=RetryPolicy(attempts=5),
            retry_on=(TransientProviderError,),
            sleep=sleeps,
        )

    assert operation.calls == 1, "Expected a single attempt."
    assert sleeps.delays == [], "Expected no backoff."


@pytest.mark.asyncio
async def test_retry_respects_time_budget() -> None:
    """A retry whose delay would overrun the budget is not started."""
    operation = _Flaky(failures=10)
    sleeps = _Sleeps()
    policy = RetryPolicy(attempts=5, base_delay=0.1, max_delay=1.0, time_budget=0.15)

    with pytest.raises(TransientProviderError):
        await retry_async(
            operation,
            policy=policy,
            retry_on=(TransientProviderError,),
            sleep=sleeps,
            rng=_half,
            clock=_frozen_clock,
        )

    assert operation.calls == 2, "Expected the budget to stop the third attempt."
    assert sleeps.delays == pytest.approx([0.1]), "Expected one delay within budget."
