"""Persistent storage for the bearer token.

Storage problems are never fatal: they are logged and treated as
"no stored value".
"""

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

TOKEN_KEY = "api-sequencer-token"


class TokenStore:
    """Keeps the token in a small JSON file under one fixed key."""

    def __init__(self, path: Path, key: str = TOKEN_KEY):
        self.path = Path(path)
        self.key = key

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            self.path.chmod(0o600)
        except OSError as e:
            logger.warning("Failed to write %s: %s", self.path, e)
            return False
        return True

    def get(self) -> str | None:
        value = self._read().get(self.key)
        return value if isinstance(value, str) and value else None

    def set(self, token: str) -> bool:
        """Store ``token``; an empty token removes the stored one."""
        if not token:
            return self.remove()
        data = self._read()
        data[self.key] = token
        return self._write(data)

    def remove(self) -> bool:
        data = self._read()
        if self.key not in data:
            return True
        del data[self.key]
        return self._write(data)
