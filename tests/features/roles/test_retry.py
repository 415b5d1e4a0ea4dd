"""Tests for transient error classification and retry."""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from neo_roles.config.settings import RoleSettings
from neo_roles.core.exceptions import CannotAssignError, DatabaseError, RoleAlreadyAssignedError
from neo_roles.features.roles.services import RetryPolicy, is_transient_error, retry_async


def raised_from(error, cause):
    try:
        raise error from cause
    except Exception as e:
        return e


class TestIsTransientError:
    """Test transient error detection."""

    @pytest.mark.parametrize("error", [
        TimeoutError(),
        asyncio.TimeoutError(),
        ConnectionResetError("Connection reset by peer"),
        RuntimeError("deadlock detected"),
        RuntimeError("Resource temporarily unavailable"),
        OSError("Broken pipe"),
    ])
    def test_transient(self, error):
        assert is_transient_error(error)

    @pytest.mark.parametrize("error", [
        None,
        ValueError("invalid input syntax"),
        RuntimeError("relation does not exist"),
        CannotAssignError("Actor cannot assign role 'admin'"),
        RoleAlreadyAssignedError("connection already holds role"),
    ])
    def test_permanent(self, error):
        assert not is_transient_error(error)

    def test_wrapped_cause_is_inspected(self):
        error = raised_from(DatabaseError("Failed to insert role assignment"), TimeoutError())

        assert is_transient_error(error)

    def test_database_error_without_transient_cause(self):
        error = raised_from(DatabaseError("Failed to insert role assignment"), ValueError("bad row"))

        assert not is_transient_error(error)


class TestRetryPolicy:
    """Test backoff configuration and delays."""

    def test_defaults(self):
        policy = RetryPolicy()

        assert policy.max_attempts == 3
        assert policy.base_delay_seconds == 1.0
        assert policy.jitter_ratio == 0.1

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"base_delay_seconds": -1},
        {"jitter_ratio": 1.5},
    ])
    def test_invalid_policy(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_exponential_delay_without_jitter(self):
        policy = RetryPolicy(base_delay_seconds=1.0, jitter_ratio=0)

        assert [policy.calculate_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_jitter_bounds(self):
        policy = RetryPolicy(base_delay_seconds=1.0, jitter_ratio=0.1)

        for attempt in range(3):
            delay = policy.calculate_delay(attempt)
            expected = 2 ** attempt
            assert expected * 0.9 <= delay <= expected * 1.1

    def test_from_settings(self):
        settings = RoleSettings(retry_max_attempts=5, retry_base_delay_seconds=0.5, retry_jitter_ratio=0)

        policy = RetryPolicy.from_settings(settings)

        assert (policy.max_attempts, policy.base_delay_seconds, policy.jitter_ratio) == (5, 0.5, 0)


class TestRetryAsync:
    """Test the retry loop."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        operation = AsyncMock(return_value="ok")

        assert await retry_async(operation, RetryPolicy(base_delay_seconds=0)) == "ok"
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        operation = AsyncMock(side_effect=[TimeoutError(), ConnectionError("connection refused"), "ok"])

        with patch("neo_roles.features.roles.services.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await retry_async(operation, RetryPolicy(base_delay_seconds=1.0, jitter_ratio=0))

        assert result == "ok"
        assert operation.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self):
        operation = AsyncMock(side_effect=ValueError("bad row"))

        with pytest.raises(ValueError):
            await retry_async(operation, RetryPolicy(base_delay_seconds=0))

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_last_error(self):
        errors = [TimeoutError("first"), TimeoutError("second")]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(TimeoutError) as exc_info:
            await retry_async(operation, RetryPolicy(max_attempts=2, base_delay_seconds=0))

        assert exc_info.value is errors[1]
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        operation = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await retry_async(operation, RetryPolicy(base_delay_seconds=0))

        assert operation.await_count == 1
