from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import msal

from ..errors import AuthenticationError
from .token_cache import EncryptedTokenCache

logger = logging.getLogger("frame_sync.auth.msal")


class MSALClient:
    """Thin wrapper around msal.PublicClientApplication for Graph access tokens."""

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        scopes: Sequence[str],
        token_cache: EncryptedTokenCache,
    ) -> None:
        if not client_id:
            raise AuthenticationError("MSAL client id is not configured")
        self.scopes = list(scopes)
        self.token_cache = token_cache
        self.token_cache.load()

        self.app = msal.PublicClientApplication(
            client_id=client_id,
            authority=f"https://login.microsoftonline.com/{tenant_id}",
            token_cache=self.token_cache.cache,
        )

    # Public API -------------------------------------------------------------

    def ensure_connected(self, flow: str = "device_code") -> Dict[str, Any]:
        """Ensure tokens exist. Supports 'pkce' and 'device_code' flows."""
        existing_accounts = self.app.get_accounts()
        if existing_accounts:
            account_count = len(existing_accounts)
            logger.info({"event": "auth.connect.cached", "accounts": account_count})
            return {"status": "already_connected", "accounts": account_count}

        if flow == "device_code":
            result = self._run_device_code_flow()
        elif flow == "pkce":
            result = self._run_pkce_flow()
        else:
            logger.warning({"event": "auth.connect.unsupported_flow", "flow": flow})
            raise ValueError("unsupported_flow")

        self.token_cache.save_if_changed()
        return {"status": "connected", "flow": flow, "expires_in": result.get("expires_in")}

    def acquire_token(self) -> str:
        """Return an access token from the cache, refreshing it silently if needed."""
        accounts = self.app.get_accounts()
        if not accounts:
            raise AuthenticationError("No cached Microsoft account; run the connect flow first")

        result: Optional[Dict[str, Any]] = self.app.acquire_token_silent(self.scopes, account=accounts[0])
        if not result or "access_token" not in result:
            message = result.get("error_description") if isinstance(result, dict) else None
            logger.error({"event": "auth.token.silent_failed", "message": message})
            raise AuthenticationError(message or "Silent token acquisition failed; reconnect required")

        self.token_cache.save_if_changed()
        return result["access_token"]

    # Flow implementations ---------------------------------------------------

    def _run_device_code_flow(self) -> Dict[str, Any]:
        logger.info({"event": "auth.connect.device_code.start"})
        device_flow = self.app.initiate_device_flow(scopes=self.scopes)
        if "user_code" not in device_flow:
            message = device_flow.get("error_description", "Device code initiation failed")
            logger.error({"event": "auth.connect.device_code.error", "message": message})
            raise AuthenticationError(message)

        logger.info({"event": "auth.connect.device_code.prompt", "message": device_flow.get("message")})
        result = self.app.acquire_token_by_device_flow(device_flow)
        self._validate_result(result)
        logger.info({"event": "auth.connect.device_code.success"})
        return result

    def _run_pkce_flow(self) -> Dict[str, Any]:
        logger.info({"event": "auth.connect.pkce.start"})
        result = self.app.acquire_token_interactive(
            scopes=self.scopes,
            prompt="select_account",
            timeout=600,
        )
        self._validate_result(result)
        logger.info({"event": "auth.connect.pkce.success"})
        return result

    @staticmethod
    def _validate_result(result: Dict[str, Any]) -> None:
        if not result or "access_token" not in result:
            message = result.get("error_description") if isinstance(result, dict) else "Unknown error"
            logger.error({"event": "auth.connect.token_failure", "message": message})
            raise AuthenticationError(message or "Token acquisition failed")
