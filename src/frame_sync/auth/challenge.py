from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..errors import AuthenticationError, ChallengeTimeoutError

logger = logging.getLogger("frame_sync.auth.challenge")

ChallengeResolver = Callable[[], Awaitable[str]]

DEFAULT_CHALLENGE_TIMEOUT = 300.0


async def resolve_challenge(
    resolver: ChallengeResolver, timeout: float = DEFAULT_CHALLENGE_TIMEOUT
) -> str:
    """Ask the injected resolver for a verification code, bounded by ``timeout``."""
    logger.info({"event": "auth.challenge.requested", "timeout": timeout})
    try:
        code = await asyncio.wait_for(resolver(), timeout)
    except asyncio.TimeoutError as exc:
        logger.error({"event": "auth.challenge.timeout", "timeout": timeout})
        raise ChallengeTimeoutError(f"No verification code received within {timeout:.0f}s") from exc

    code = (code or "").strip()
    if not code:
        raise AuthenticationError("Empty verification code")
    logger.info({"event": "auth.challenge.received"})
    return code


def console_challenge_resolver(prompt: str = "Enter verification code: ") -> ChallengeResolver:
    """Resolver that reads the code from stdin without blocking the event loop."""

    async def resolve() -> str:
        return await asyncio.to_thread(input, prompt)

    return resolve
