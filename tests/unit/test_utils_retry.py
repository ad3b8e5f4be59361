"""Unit tests for the retry_on_rate_limit decorator."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from pytest import MonkeyPatch

from mo_linear.linear.exceptions import LinearAPIError, LinearRateLimitError
from mo_linear.utils import retry
from mo_linear.utils.retry import retry_on_rate_limit


@pytest.fixture
def sleep(monkeypatch: MonkeyPatch) -> AsyncMock:
    """Replace asyncio.sleep inside the retry module."""
    mock = AsyncMock()
    monkeypatch.setattr(retry, "asyncio", MagicMock(sleep=mock))
    return mock


class Reader:
    """Object whose read fails a configurable number of times."""

    def __init__(self, errors: list[Exception], max_retries: int = 3) -> None:
        """Initialize with the errors to raise before succeeding."""
        self.errors = errors
        self.max_retries = max_retries
        self.calls = 0

    @retry_on_rate_limit()
    async def read(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


@pytest.mark.asyncio
async def test_success_without_retry(sleep: AsyncMock) -> None:
    """Test that a successful call is not retried."""
    reader = Reader([])
    assert await reader.read() == "ok"
    assert reader.calls == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_after_hint_is_used(sleep: AsyncMock) -> None:
    """Test that the server-provided retry delay is honoured."""
    reader = Reader([LinearRateLimitError("slow down", retry_after=4)])
    assert await reader.read() == "ok"
    sleep.assert_awaited_once_with(4)


@pytest.mark.asyncio
async def test_exponential_backoff_without_hint(sleep: AsyncMock) -> None:
    """Test that delays double when no retry-after hint is given."""
    reader = Reader([LinearRateLimitError("slow down"), LinearRateLimitError("slow down")])
    assert await reader.read() == "ok"
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_retry_after_is_capped(sleep: AsyncMock) -> None:
    """Test that a very long retry-after hint is capped at max_delay."""
    reader = Reader([LinearRateLimitError("slow down", retry_after=3600)])
    await reader.read()
    sleep.assert_awaited_once_with(30.0)


@pytest.mark.asyncio
async def test_max_retries_from_instance(sleep: AsyncMock) -> None:
    """Test that the instance's max_retries bounds the attempts."""
    reader = Reader([LinearRateLimitError("slow down") for _ in range(5)], max_retries=1)
    with pytest.raises(LinearRateLimitError):
        await reader.read()
    assert reader.calls == 2


@pytest.mark.asyncio
async def test_non_transient_errors_are_not_retried(sleep: AsyncMock) -> None:
    """Test that a GraphQL validation error propagates immediately."""
    reader = Reader([LinearAPIError("Argument Validation Error", status_code=400)])
    with pytest.raises(LinearAPIError):
        await reader.read()
    assert reader.calls == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_network_errors_are_retried(sleep: AsyncMock) -> None:
    """Test that timeouts and gateway errors are retried."""
    reader = Reader([LinearAPIError("timed out", code="TIMEOUT"), LinearAPIError("bad gateway", status_code=502)])
    assert await reader.read() == "ok"
    assert reader.calls == 3
    assert sleep.await_count == 2


def test_sync_function_is_rejected() -> None:
    """Test that decorating a synchronous function raises TypeError."""
    with pytest.raises(TypeError):

        @retry_on_rate_limit()
        def not_async() -> None:
            pass
