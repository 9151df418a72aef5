"""Authentication helpers."""

from .challenge import ChallengeResolver, console_challenge_resolver, resolve_challenge
from .msal_client import MSALClient
from .token_cache import EncryptedTokenCache

__all__ = [
    "ChallengeResolver",
    "EncryptedTokenCache",
    "MSALClient",
    "console_challenge_resolver",
    "resolve_challenge",
]
