"""Credential storage for the access/refresh token pair.

Stores tokens in ~/.rimstudio/tokens.json with restrictive file permissions.

Note: Tokens are stored in plaintext and protected by file permissions (0o600).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config import DEFAULT_CONFIG_DIR

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"


@dataclass(frozen=True)
class TokenPair:
    """Access/refresh token pair. Replaced wholesale, never mutated."""

    access_token: str
    refresh_token: str

    def __post_init__(self) -> None:
        for name in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"{name} must be a non-empty string")

    def __repr__(self) -> str:
        return "TokenPair(access_token=***, refresh_token=***)"

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for storage."""
        return {
            ACCESS_TOKEN_KEY: self.access_token,
            REFRESH_TOKEN_KEY: self.refresh_token,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenPair | None":
        """Create from stored dictionary; None unless both fields are present."""
        access_token = data.get(ACCESS_TOKEN_KEY)
        refresh_token = data.get(REFRESH_TOKEN_KEY)
        if not isinstance(access_token, str) or not access_token:
            return None
        if not isinstance(refresh_token, str) or not refresh_token:
            return None
        return cls(access_token=access_token, refresh_token=refresh_token)


class CredentialStore:
    """File-backed storage for the current token pair.

    Usage:
        store = CredentialStore()

        store.save(TokenPair("access", "refresh"))
        pair = store.load()  # TokenPair or None
        store.clear()
    """

    def __init__(self, config_dir: Path | str | None = None):
        """Initialize credential storage.

        Args:
            config_dir: Directory for the tokens file (default: ~/.rimstudio)
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.tokens_file = self.config_dir / "tokens.json"

    def load(self) -> TokenPair | None:
        """Load the persisted pair, or None if absent or incomplete."""
        if not self.tokens_file.exists():
            return None

        try:
            with open(self.tokens_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not load stored credentials: %s", e)
            return None

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed credentials file %s", self.tokens_file)
            return None

        pair = TokenPair.from_dict(data)
        if pair is None:
            logger.warning("Ignoring incomplete credentials in %s", self.tokens_file)
        return pair

    def save(self, pair: TokenPair) -> None:
        """Persist both tokens in a single replace of the tokens file."""
        payload = pair.to_dict()
        payload["updated_at"] = datetime.now().isoformat()
        content = json.dumps(payload, indent=2)

        fd, tmp_name = tempfile.mkstemp(dir=self.config_dir, prefix=".tokens-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.tokens_file)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def clear(self) -> None:
        """Remove both tokens."""
        try:
            self.tokens_file.unlink()
        except FileNotFoundError:
            pass


class MemoryCredentialStore:
    """In-process store with the same contract as CredentialStore."""

    def __init__(self, pair: TokenPair | None = None):
        self._pair = pair

    def load(self) -> TokenPair | None:
        return self._pair

    def save(self, pair: TokenPair) -> None:
        self._pair = pair

    def clear(self) -> None:
        self._pair = None
