"""
Storage Retry Policy

A single configurable retry policy applied at the storage-call boundary
(chunk lookups and partition catalog operations). Built on Tenacity.

Only transient storage failures are retried: dropped connections, operational
errors raised by the driver, and timeouts. Input errors and programming errors
propagate on the first attempt.

Example
-------
    >>> policy = RetryPolicy.from_settings()
    >>> rows = await policy.call(store.fetch_rows, tenant_id)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random_exponential,
)

from ..config import settings

logger = logging.getLogger("retrieval.retry")

T = TypeVar("T")


def is_transient_storage_error(exc: BaseException) -> bool:
    """
    Return True when ``exc`` is worth another attempt.
    """
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (ConnectionError, asyncio.TimeoutError))


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff with optional full jitter.

    Attributes
    ----------
    max_attempts : int
        Total attempts including the first call.
    base_delay : float
        Seconds; the delay before retry ``n`` is ``base_delay * 2 ** n``.
    max_delay : float
        Upper bound for a single sleep, in seconds.
    jitter : bool
        Draw each sleep uniformly from ``[0, delay]`` instead of sleeping
        exactly ``delay``.
    """

    max_attempts: int = 3
    base_delay: float = 0.25
    max_delay: float = 5.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be >= 0")

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )

    def retrying(self) -> AsyncRetrying:
        """
        Build a fresh Tenacity controller for one logical call.
        """
        if self.jitter:
            wait = wait_random_exponential(multiplier=self.base_delay, max=self.max_delay)
        else:
            wait = wait_exponential(multiplier=self.base_delay, max=self.max_delay)

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait,
            retry=retry_if_exception(is_transient_storage_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Await ``fn(*args, **kwargs)`` under this policy.

        The last exception is re-raised unchanged once attempts are exhausted.
        """
        async for attempt in self.retrying():
            with attempt:
                return await fn(*args, **kwargs)
        raise AssertionError("unreachable")  # pragma: no cover
