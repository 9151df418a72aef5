from __future__ import annotations

import logging
from pathlib import Path
from typing import Final, Optional

import keyring
from cryptography.fernet import Fernet, InvalidToken
from keyring.errors import KeyringError
from msal import SerializableTokenCache

logger = logging.getLogger("frame_sync.auth.token_cache")

DEFAULT_SERVICE_NAME: Final[str] = "frame_sync"
DEFAULT_KEY_NAME: Final[str] = "msal_token_cache"


class EncryptedTokenCache:
    """MSAL token cache persisted to disk, encrypted with a Fernet key kept in the OS keyring."""

    def __init__(
        self,
        path: Path,
        *,
        key_name: str = DEFAULT_KEY_NAME,
        service_name: str = DEFAULT_SERVICE_NAME,
    ) -> None:
        self.path = Path(path)
        self.key_name = key_name
        self.service_name = service_name
        self.cache = SerializableTokenCache()
        self._fernet: Optional[Fernet] = None

    def load(self) -> bool:
        """Populate the in-memory cache from disk; False when there is nothing usable."""
        if not self.path.exists():
            return False
        try:
            raw = self._cipher().decrypt(self.path.read_bytes())
        except (InvalidToken, OSError) as exc:
            logger.warning({"event": "auth.cache.load_failed", "error": type(exc).__name__})
            return False
        self.cache.deserialize(raw.decode("utf-8"))
        logger.debug({"event": "auth.cache.loaded"})
        return True

    def save_if_changed(self) -> bool:
        if not self.cache.has_state_changed:
            return False
        encrypted = self._cipher().encrypt(self.cache.serialize().encode("utf-8"))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(encrypted)
        self.cache.has_state_changed = False
        logger.info({"event": "auth.cache.saved"})
        return True

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._key())
        return self._fernet

    def _key(self) -> bytes:
        try:
            existing = keyring.get_password(self.service_name, self.key_name)
        except KeyringError as exc:
            logger.error({"event": "auth.keyring.fetch_failed", "error": str(exc)})
            raise

        if existing:
            return existing.encode("utf-8")

        key = Fernet.generate_key()
        try:
            keyring.set_password(self.service_name, self.key_name, key.decode("utf-8"))
        except KeyringError as exc:
            logger.error({"event": "auth.keyring.store_failed", "error": str(exc)})
            raise

        logger.info({"event": "auth.keyring.key_created", "key_name": self.key_name})
        return key
