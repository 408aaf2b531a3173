"""Client-side key/value storage and access token bookkeeping."""

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

import jwt
import structlog

logger = structlog.get_logger(__name__)

TOKEN_KEY = "auth_token"
REFRESH_TOKEN_KEY = "refresh_token"


class LocalStorage:
    """String key/value store, optionally persisted to a JSON file.

    Without a path the values only live for the lifetime of the object.
    Every write is flushed to disk so a new process picks the values up.
    """

    def __init__(self, path: Optional[Path | str] = None):
        self.path = Path(path) if path else None
        self._items: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("client_storage_unreadable", path=str(self.path), error=str(e))
            return
        if isinstance(data, dict):
            self._items = {str(k): str(v) for k, v in data.items()}

    def _flush(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._items), encoding="utf-8")
        except OSError as e:
            logger.error("client_storage_write_failed", path=str(self.path), error=str(e))

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()


class TokenStorage:
    """Stores the access token (and optional refresh token) in LocalStorage."""

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    def get_token(self) -> Optional[str]:
        return self.storage.get_item(TOKEN_KEY)

    def set_token(self, token: str) -> None:
        self.storage.set_item(TOKEN_KEY, token)

    def get_refresh_token(self) -> Optional[str]:
        return self.storage.get_item(REFRESH_TOKEN_KEY)

    def set_refresh_token(self, token: str) -> None:
        self.storage.set_item(REFRESH_TOKEN_KEY, token)

    def clear_tokens(self) -> None:
        for key in (TOKEN_KEY, REFRESH_TOKEN_KEY):
            self.storage.remove_item(key)

    def has_token(self) -> bool:
        token = self.get_token()
        return token is not None and token.strip() != ""

    @staticmethod
    def decode_token(token: str) -> Optional[Dict[str, Any]]:
        """Read a JWT payload without verifying it.

        Only for client-side expiry checks; the server never trusts this.
        """
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return None

    def is_token_expired(self, token: Optional[str] = None, threshold_seconds: int = 0) -> bool:
        """Check whether the token expires within ``threshold_seconds``.

        Missing, unreadable and exp-less tokens count as expired.
        """
        token = token if token is not None else self.get_token()
        if not token:
            return True
        payload = self.decode_token(token)
        if not payload or "exp" not in payload:
            return True
        return payload["exp"] < time.time() + threshold_seconds
