import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import DBAPIError, OperationalError

from metachat_retrieval.core.errors import InvalidInput
from metachat_retrieval.core.retry import RetryPolicy, is_transient_storage_error


class TestTransientClassification:

    @pytest.mark.parametrize(
        "exc",
        [
            ConnectionError("reset"),
            asyncio.TimeoutError(),
            OperationalError("SELECT 1", {}, Exception("server closed the connection")),
            DBAPIError("SELECT 1", {}, Exception("gone"), connection_invalidated=True),
        ],
    )
    def test_transient(self, exc):
        assert is_transient_storage_error(exc)

    @pytest.mark.parametrize(
        "exc",
        [
            InvalidInput("bad"),
            ValueError("bad"),
            DBAPIError("SELECT 1", {}, Exception("syntax")),
        ],
    )
    def test_not_transient(self, exc):
        assert not is_transient_storage_error(exc)


class TestRetryPolicy:

    async def test_returns_first_success(self, fast_retry):
        fn = AsyncMock(return_value=42)
        assert await fast_retry.call(fn, 1, key="v") == 42
        fn.assert_awaited_once_with(1, key="v")

    async def test_retries_transient_errors(self, fast_retry):
        fn = AsyncMock(side_effect=[ConnectionError("a"), ConnectionError("b"), "ok"])
        assert await fast_retry.call(fn) == "ok"
        assert fn.await_count == 3

    async def test_reraises_last_error_when_exhausted(self, fast_retry):
        fn = AsyncMock(side_effect=ConnectionError("still down"))
        with pytest.raises(ConnectionError, match="still down"):
            await fast_retry.call(fn)
        assert fn.await_count == 3

    async def test_does_not_retry_input_errors(self, fast_retry):
        fn = AsyncMock(side_effect=InvalidInput("bad top_k"))
        with pytest.raises(InvalidInput):
            await fast_retry.call(fn)
        assert fn.await_count == 1

    def test_from_settings(self):
        policy = RetryPolicy.from_settings()
        assert policy.max_attempts == 3
        assert policy.base_delay == 0.25
        assert policy.max_delay == 5.0
        assert policy.jitter is True

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
