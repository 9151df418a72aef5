"""Error taxonomy and retry utilities."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

logger = logging.getLogger("frame_sync.errors")


class FrameSyncError(Exception):
    """Base exception for synchronization errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationError(FrameSyncError):
    """Endpoint credentials rejected or a further challenge is required."""


class ChallengeTimeoutError(AuthenticationError):
    """The injected challenge resolver did not produce a code in time."""


class EndpointConnectionError(FrameSyncError, ConnectionError):
    """Endpoint host unreachable or transport setup failed."""


class NotFoundError(FrameSyncError):
    """Requested album, folder or item does not exist."""


class TransferError(FrameSyncError):
    """Upload or download failed at the application layer."""


class UnsupportedOperationError(FrameSyncError):
    """Capability invoked on an endpoint that does not provide it."""


class NotInitializedError(FrameSyncError, RuntimeError):
    """Endpoint used before initialize() completed."""


class ConfigurationError(FrameSyncError):
    """Required settings are missing or inconsistent."""


class ProtocolError(FrameSyncError):
    """Thumbnail data channel framing was violated."""

    def __init__(self, message: str, reason: str = "protocol"):
        self.reason = reason
        super().__init__(message)


class ThrottledError(FrameSyncError):
    """Remote API asked us to slow down."""

    def __init__(self, message: str, retry_after: int):
        self.retry_after = retry_after
        super().__init__(message)


T = TypeVar("T")


async def with_retry(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    retry_on: tuple = (ThrottledError,),
) -> T:
    """
    Retry a coroutine function with exponential backoff.

    Args:
        func: Zero-argument async callable to retry
        max_attempts: Maximum number of attempts
        initial_delay: Delay before the second attempt in seconds
        max_delay: Upper bound for any single delay in seconds
        backoff_factor: Multiplier for delay after each attempt
        retry_on: Tuple of exceptions to retry on

    Returns:
        Result of the function call

    Raises:
        Last exception encountered if all attempts fail
    """
    attempt = 0
    delay = initial_delay

    while True:
        try:
            return await func()
        except retry_on as e:
            attempt += 1
            if attempt >= max_attempts:
                raise

            # Throttling carries the server's own hint
            if isinstance(e, ThrottledError):
                wait = min(e.retry_after, max_delay)
            else:
                wait = min(delay, max_delay)
                delay = delay * backoff_factor

            logger.warning(
                {
                    "event": "retry.scheduled",
                    "attempt": attempt,
                    "delay": wait,
                    "error": str(e),
                }
            )
            await asyncio.sleep(wait)


def handle_graph_response(response: httpx.Response) -> None:
    """
    Map Microsoft Graph error responses onto the error taxonomy.

    Args:
        response: The httpx response to check

    Raises:
        AuthenticationError: For 401/403
        NotFoundError: For 404
        ThrottledError: For 429 and 503 with Retry-After
        TransferError: For any other error status
    """
    if not response.is_error:
        return

    message = _graph_error_message(response)
    status = response.status_code

    if status in (401, 403):
        raise AuthenticationError(message or "Authentication failed or token expired")
    if status == 404:
        raise NotFoundError(message or "Item not found")
    if status == 429 or (status == 503 and "Retry-After" in response.headers):
        retry_after = get_retry_after(response.headers)
        if retry_after is None:
            retry_after = 60
        raise ThrottledError(message or "Too many requests", retry_after=retry_after)
    raise TransferError(f"Graph API error {status}: {message or 'unknown error'}")


def _graph_error_message(response: httpx.Response) -> str:
    try:
        payload: Any = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            return str(error.get("message", ""))
    return ""


def get_retry_after(headers: httpx.Headers | dict) -> Optional[int]:
    """
    Extract Retry-After value from response headers.

    Args:
        headers: Response headers

    Returns:
        Seconds to wait before retry, or None if not found
    """
    retry_after = headers.get("Retry-After")
    if not retry_after:
        return None

    try:
        return max(0, int(retry_after))
    except ValueError:
        pass

    try:
        retry_date = parsedate_to_datetime(retry_after)
    except (TypeError, ValueError):
        return None
    if retry_date.tzinfo is None:
        retry_date = retry_date.replace(tzinfo=timezone.utc)
    return max(0, int((retry_date - datetime.now(timezone.utc)).total_seconds()))
