from __future__ import annotations
"""Generic completion poller shared by every provider adapter.

A provider supplies an async ``check`` callable that inspects the remote job
once and reports pending, success or failure. The poller spaces the calls
by a fixed interval and enforces a wall-clock deadline around the whole
loop, so a hung HTTP call cannot outlive the timeout either.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

import httpx

from videoproxy.services.errors import PollTimeoutError, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PENDING = "pending"
SUCCESS = "success"
FAILURE = "failure"


@dataclass(frozen=True)
class PollResult(Generic[T]):
    """Outcome of a single status check."""
    state: str
    value: T | None = None
    reason: str = ""

    @classmethod
    def pending(cls) -> PollResult[Any]:
        return cls(PENDING)

    @classmethod
    def success(cls, value: T) -> PollResult[T]:
        return cls(SUCCESS, value=value)

    @classmethod
    def failure(cls, reason: str) -> PollResult[Any]:
        return cls(FAILURE, reason=reason)


async def poll_until_complete(
    check: Callable[[], Awaitable[PollResult[T]]],
    *,
    interval: float,
    timeout: float,
    label: str = "job",
    retry_transient_errors: bool = False,
) -> T:
    """Invoke ``check`` until it reports success or failure.

    Raises:
        UpstreamError: the job reached a failed terminal state, or a polling
            request failed and transient errors are not retried.
        PollTimeoutError: the deadline elapsed first.
    """

    async def _loop() -> T:
        attempt = 0
        while True:
            await asyncio.sleep(interval)
            attempt += 1
            try:
                result = await check()
            except (httpx.HTTPError, UpstreamError) as e:
                transient = isinstance(e, httpx.HTTPError) or e.retriable
                if not (retry_transient_errors and transient):
                    raise
                logger.warning("%s poll #%d failed, retrying: %s", label, attempt, e)
                continue

            if result.state == SUCCESS:
                logger.info("%s completed after %d poll(s)", label, attempt)
                return result.value  # type: ignore[return-value]
            if result.state == FAILURE:
                raise UpstreamError(result.reason or f"{label} failed")
            logger.debug("%s poll #%d: still pending", label, attempt)

    try:
        return await asyncio.wait_for(_loop(), timeout=timeout)
    except asyncio.TimeoutError:
        raise PollTimeoutError(
            f"Timed out while waiting for {label} to render ({timeout:g}s)."
        ) from None
