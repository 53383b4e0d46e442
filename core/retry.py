"""
Retry wrapper for backend HTTP calls.

Each attempt runs under its own timeout. A 2xx status returns immediately;
any other status or a raised transport error waits ``base_delay * attempt``
seconds and tries again, up to ``max_attempts`` attempts in total. When the
attempts run out the last failure is surfaced as a `RequestTimeoutError`,
a `NetworkError` or a plain `RequestFailedError`.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

import aiohttp

from core.exceptions import (
    FeedClientError,
    NetworkError,
    RequestFailedError,
    RequestTimeoutError,
)
from core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_success_status(status: int) -> bool:
    return 200 <= status < 300


async def request_with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 2,
    base_delay: float = 1.0,
    timeout: float = 15.0,
    give_up_on: Iterable[int] = (),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    operation: str = "request",
) -> T:
    """Invoke ``fn`` with bounded retries and linearly increasing delay.

    Args:
        fn: Zero-argument coroutine factory performing one attempt. Its result
            is checked through a ``status`` attribute; results without one are
            treated as successful.
        max_attempts: Total number of attempts, at least 1.
        base_delay: Seconds to wait after attempt ``n`` is ``base_delay * n``.
        timeout: Per-attempt deadline in seconds.
        give_up_on: Statuses returned to the caller without retrying (for
            example 404, which will not change on a second try).
        sleep: Awaitable sleep, injectable for tests.
        operation: Label used in log lines.

    Returns:
        The first successful (or ``give_up_on``) result.

    Raises:
        RequestTimeoutError: The last attempt timed out.
        NetworkError: The last attempt failed at the transport level.
        RequestFailedError: The last attempt returned a non-2xx status; the
            failing result is kept on ``last_result``.
        FeedClientError: Raised by ``fn`` itself; never retried.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    give_up = set(give_up_on)
    last_status = None
    last_error = None
    last_result = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = await asyncio.wait_for(fn(), timeout=timeout)
        except FeedClientError:
            raise
        except asyncio.TimeoutError as e:
            last_error, last_status = e, None
            logger.warning(
                f"{operation} timed out after {timeout}s (attempt {attempt}/{max_attempts})"
            )
        except Exception as e:
            last_error, last_status = e, None
            logger.warning(
                f"{operation} raised {type(e).__name__}: {e} (attempt {attempt}/{max_attempts})"
            )
        else:
            status = getattr(result, "status", None)
            if status is None or is_success_status(status) or status in give_up:
                return result
            last_error, last_status, last_result = None, status, result
            logger.warning(
                f"{operation} returned status {status} (attempt {attempt}/{max_attempts})"
            )

        if attempt < max_attempts:
            await sleep(base_delay * attempt)

    if isinstance(last_error, asyncio.TimeoutError):
        raise RequestTimeoutError(timeout, max_attempts) from last_error
    if isinstance(last_error, (aiohttp.ClientError, OSError)):
        raise NetworkError(max_attempts, str(last_error) or type(last_error).__name__) from last_error
    if last_error is not None:
        raise RequestFailedError(max_attempts, reason=str(last_error) or type(last_error).__name__) from last_error
    raise RequestFailedError(max_attempts, last_status, last_result=last_result)
