"""Bounded retry around fallible remote calls.

The controller holds no state between invocations: the operation and the
policy are passed per call, so one controller can serve many concurrent runs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import anthropic
import httpx
import openai

from src.pipeline.errors import NonRetryableRequestError, RetryableTransportError
from src.pipeline.models import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[BaseException, int], None]
Sleep = Callable[[float], Awaitable[None]]

# Substrings that mark an otherwise untyped error as network-class
_NETWORK_HINTS = ("network", "timeout", "timed out", "connection reset", "connection refused")


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


def _status_code(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def is_retryable_error(error: BaseException) -> bool:
    """Classify an error as transient (worth retrying) or permanent.

    Network-class errors, rate limiting (429) and server errors (>= 500) are
    retryable. Authentication, validation and other 4xx errors are not.
    """
    if isinstance(error, RetryableTransportError):
        return True
    if isinstance(error, NonRetryableRequestError):
        return False
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    if isinstance(error, (anthropic.APIConnectionError, openai.APIConnectionError)):
        return True

    status = _status_code(error)
    if status is not None:
        return status == 429 or status >= 500

    message = str(error).lower()
    return any(hint in message for hint in _NETWORK_HINTS)


class RetryController:
    """Run an async operation up to ``policy.max_attempts`` times.

    The last observed error is re-raised unchanged once attempts run out or
    the policy classifies it as non-retryable.
    """

    def __init__(self, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        on_retry: RetryCallback | None = None,
        label: str = "operation",
    ) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                if policy.attempt_timeout is not None:
                    return await asyncio.wait_for(operation(), timeout=policy.attempt_timeout)
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if attempt >= policy.max_attempts:
                    logger.warning(
                        "%s failed on attempt %d/%d, giving up: %s",
                        label,
                        attempt,
                        policy.max_attempts,
                        _describe(exc),
                    )
                    raise
                if not policy.is_retryable(exc):
                    logger.warning(
                        "%s failed with non-retryable error: %s", label, _describe(exc)
                    )
                    raise

                delay = policy.delay_for(attempt)
                logger.info(
                    "%s attempt %d/%d failed (%s); retrying in %.1fs",
                    label,
                    attempt,
                    policy.max_attempts,
                    _describe(exc),
                    delay,
                )
                if on_retry is not None:
                    on_retry(exc, attempt)
                await self._sleep(delay)
