"""Retry primitives for provider calls."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx

from .errors import VisionTransientError


T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 8.0
    jitter: float = 0.0
    attempt_timeout_s: float | None = None


def compute_delay(policy: RetryPolicy, attempt: int) -> float:
    """Backoff before retry number ``attempt + 1`` (0-based: 1s, 2s, 4s...)."""

    base = min(policy.max_delay_s, policy.base_delay_s * (2**attempt))
    jitter = base * policy.jitter
    return max(0.0, base + random.uniform(-jitter, jitter))


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    is_retryable: Callable[[Exception], bool],
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    """Run ``fn`` up to ``policy.max_attempts`` times.

    Each attempt is bounded by ``policy.attempt_timeout_s``; a timed-out
    attempt counts against the budget. Non-retryable errors and the final
    failure are re-raised unchanged. Cancellation propagates from both the
    attempt and the backoff sleep.
    """

    last_exc: Exception | None = None
    for attempt in range(policy.max_attempts):
        try:
            if policy.attempt_timeout_s is not None:
                return await asyncio.wait_for(fn(), timeout=policy.attempt_timeout_s)
            return await fn()
        except Exception as exc:
            last_exc = exc
            if attempt >= policy.max_attempts - 1 or not is_retryable(exc):
                raise
            delay = compute_delay(policy, attempt)
            if on_retry is not None:
                on_retry(attempt + 1, exc, delay)
            await asyncio.sleep(delay)
    if last_exc:
        raise last_exc
    raise RuntimeError("retry_async failed without exception")


def is_retryable_http_status(status_code: int) -> bool:
    return status_code in {408, 409, 425, 429} or 500 <= status_code <= 599


def is_retryable_exception(exc: Exception) -> bool:
    if isinstance(
        exc,
        (
            httpx.TransportError,
            TimeoutError,
            asyncio.TimeoutError,
            ConnectionError,
            VisionTransientError,
        ),
    ):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return is_retryable_http_status(exc.response.status_code)
    return False
