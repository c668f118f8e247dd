"""Tests for the retry policy."""

from unittest.mock import AsyncMock

import pytest

from tryon_studio.retry import NO_RETRY, RetryPolicy


def _policy(max_attempts, **kwargs):
    sleep = AsyncMock()
    return RetryPolicy(max_attempts=max_attempts, sleep=sleep, **kwargs), sleep


@pytest.mark.asyncio
async def test_returns_first_success():
    policy, sleep = _policy(3)
    operation = AsyncMock(return_value="ok")

    assert await policy.run(operation) == "ok"
    operation.assert_awaited_once()
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retries_with_exponential_backoff():
    policy, sleep = _policy(3, base_delay=1.0)
    operation = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "ok"])

    assert await policy.run(operation, label="test") == "ok"
    assert operation.await_count == 3
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_reraises_last_error():
    policy, sleep = _policy(3)
    operation = AsyncMock(side_effect=[RuntimeError("first"), RuntimeError("second"), RuntimeError("last")])

    with pytest.raises(RuntimeError, match="last"):
        await policy.run(operation)
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_does_not_retry_unlisted_errors():
    policy, sleep = _policy(3, retry_on=(ConnectionError,))
    operation = AsyncMock(side_effect=ValueError("bad input"))

    with pytest.raises(ValueError):
        await policy.run(operation)
    operation.assert_awaited_once()


@pytest.mark.asyncio
async def test_single_attempt():
    operation = AsyncMock(side_effect=RuntimeError("boom"))

    with pytest.raises(RuntimeError, match="boom"):
        await NO_RETRY.run(operation)
    operation.assert_awaited_once()


def test_delay_for():
    policy = RetryPolicy(max_attempts=4, base_delay=0.5)
    assert [policy.delay_for(n) for n in range(3)] == [0.5, 1.0, 2.0]


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
