"""
Tests unitaires RetryHandler

Retries bornés avec backoff exponentiel et timeout par tentative.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from gatekeeper.network import (
    IRetryHandler,
    MaxRetriesExceededError,
    RetryConfig,
    RetryHandler,
    with_retry,
)


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_default_max_attempts_is_3(self) -> None:
        handler = RetryHandler()
        call_count = 0

        async def failing_func() -> None:
            nonlocal call_count
            call_count += 1
            raise ConnectionError("smtp down")

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await handler.execute_with_retry(failing_func)

        assert isinstance(handler, IRetryHandler)
        assert call_count == 3
        assert result.attempts == 3
        assert result.success is False
        assert isinstance(result.last_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self) -> None:
        handler = RetryHandler()

        async def success_func() -> str:
            return "sent"

        result = await handler.execute_with_retry(success_func)

        assert result.success is True
        assert result.result == "sent"
        assert result.attempts == 1
        assert result.total_delay == 0.0

    @pytest.mark.asyncio
    async def test_success_after_retry(self) -> None:
        handler = RetryHandler()
        call_count = 0

        async def eventual_success() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise TimeoutError("slow relay")
            return "sent"

        with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await handler.execute_with_retry(eventual_success)

        assert result.success is True
        assert result.attempts == 2
        sleep.assert_awaited_once_with(1.0)
        assert handler.get_retry_stats()["successful_retries"] == 1

    @pytest.mark.asyncio
    async def test_backoff_delays(self) -> None:
        handler = RetryHandler()
        failing = AsyncMock(side_effect=ConnectionError("down"))

        with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await handler.execute_with_retry(failing, config=RetryConfig(max_attempts=4))

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]
        assert result.total_delay == 7.0

    def test_delay_capped(self) -> None:
        handler = RetryHandler()
        config = RetryConfig(initial_delay=1.0, max_delay=5.0)

        assert handler.calculate_delay(10, config) == 5.0

    @pytest.mark.asyncio
    async def test_non_retryable_stops_immediately(self) -> None:
        handler = RetryHandler()
        failing = AsyncMock(side_effect=ValueError("bad address"))

        result = await handler.execute_with_retry(failing)

        assert failing.await_count == 1
        assert result.success is False
        assert isinstance(result.last_error, ValueError)

    @pytest.mark.asyncio
    async def test_sync_callable_supported(self) -> None:
        result = await RetryHandler().execute_with_retry(lambda: 42)
        assert result.result == 42


class TestAttemptTimeout:
    @pytest.mark.asyncio
    async def test_timeout_counts_as_retryable_failure(self) -> None:
        handler = RetryHandler()

        async def hangs() -> None:
            await asyncio.Event().wait()

        config = RetryConfig(max_attempts=2, initial_delay=0.0, attempt_timeout=0.01)
        result = await handler.execute_with_retry(hangs, config=config)

        assert result.success is False
        assert result.attempts == 2
        assert isinstance(result.last_error, asyncio.TimeoutError)


class TestRetryDecorator:
    @pytest.mark.asyncio
    async def test_decorator_raises_after_exhaustion(self) -> None:
        @with_retry(max_attempts=2, initial_delay=0.0)
        async def send() -> None:
            raise ConnectionError("down")

        with pytest.raises(MaxRetriesExceededError) as exc_info:
            await send()

        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_decorator_returns_result(self) -> None:
        @with_retry(max_attempts=2)
        async def send() -> str:
            return "ok"

        assert await send() == "ok"
