"""Tests for ecobee_sync.retry - bounded fixed-delay retry."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError

from ecobee_sync.errors import RetryExhaustedError
from ecobee_sync.retry import RetryPolicy


class TestRetryPolicy:
    def test_defaults(self) -> None:
        policy = RetryPolicy()
        assert policy.attempts == 2
        assert policy.delay_s == 1.0
        assert policy.timeout_s is None

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValidationError):
            RetryPolicy(attempts=0)

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self) -> None:
        op = AsyncMock(return_value="ok")
        assert await RetryPolicy(attempts=3, delay_s=0).run(op, label="op") == "ok"
        op.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        op = AsyncMock(side_effect=[ConnectionError("down"), ConnectionError("down"), 7])
        assert await RetryPolicy(attempts=3, delay_s=0).run(op, label="op") == 7
        assert op.await_count == 3

    @pytest.mark.asyncio
    async def test_exhaustion_chains_last_error(self) -> None:
        errors = [ConnectionError("first"), ValueError("last")]
        op = AsyncMock(side_effect=errors)
        with pytest.raises(RetryExhaustedError) as exc_info:
            await RetryPolicy(attempts=2, delay_s=0).run(op, label="influx write")
        exc = exc_info.value
        assert exc.attempts == 2
        assert exc.label == "influx write"
        assert exc.last_error is errors[1]
        assert exc.__cause__ is errors[1]

    @pytest.mark.asyncio
    async def test_single_attempt_raises_without_sleeping(self) -> None:
        error = TimeoutError()
        op = AsyncMock(side_effect=error)
        with patch("ecobee_sync.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(RetryExhaustedError) as exc_info:
                await RetryPolicy(attempts=1, delay_s=3).run(op, label="op")
        op.assert_awaited_once()
        sleep.assert_not_awaited()
        assert exc_info.value.last_error is error
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_fixed_delay_between_attempts(self) -> None:
        op = AsyncMock(side_effect=[OSError(), OSError(), OSError()])
        with patch("ecobee_sync.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(RetryExhaustedError):
                await RetryPolicy(attempts=3, delay_s=2.5).run(op, label="op")
        # no sleep after the final attempt
        assert [c.args[0] for c in sleep.await_args_list] == [2.5, 2.5]

    @pytest.mark.asyncio
    async def test_per_attempt_timeout(self) -> None:
        calls = 0

        async def slow() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(5)
            return "done"

        result = await RetryPolicy(attempts=2, delay_s=0, timeout_s=0.05).run(slow, label="slow")
        assert result == "done"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_logs_each_failure(self, caplog: pytest.LogCaptureFixture) -> None:
        op = AsyncMock(side_effect=[OSError("boom"), OSError("boom")])
        with caplog.at_level(logging.WARNING, logger="ecobee_sync.retry"):
            with pytest.raises(RetryExhaustedError):
                await RetryPolicy(attempts=2, delay_s=0).run(op, label="sensor -> mqtt")
        messages = [r.getMessage() for r in caplog.records]
        assert "sensor -> mqtt failed (attempt 1/2): boom - retrying in 0.0s" in messages
        assert "sensor -> mqtt failed after 2 attempts: boom" in messages
