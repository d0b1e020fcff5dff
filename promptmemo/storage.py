"""Persistent key/value state and access-token storage."""

from __future__ import annotations

import json
import logging
import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger("promptmemo.storage")

TOKEN_ENV_VAR = "PROMPTMEMO_GITLAB_TOKEN"


class StateStore:
    """JSON-file backed key/value store; every write is flushed to disk."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: Optional[Dict[str, Any]] = None

    def get_value(self, key: str, default: Any = None) -> Any:
        data = self._load()
        if key not in data:
            return deepcopy(default)
        return deepcopy(data[key])

    def set_value(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = deepcopy(value)
        self._save(data)

    def reload(self) -> None:
        """Drop the in-memory copy so the next read goes to disk."""
        self._data = None

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self.path.exists():
            self._data = {}
            return self._data
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            logger.error("State file %s is not valid JSON, starting empty: %s", self.path, e)
            loaded = {}
        if not isinstance(loaded, dict):
            logger.error("State file %s does not hold a mapping, starting empty", self.path)
            loaded = {}
        self._data = loaded
        return self._data

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)
        logger.debug("Saved state to %s (%d keys)", self.path, len(data))


@dataclass
class TokenStore:
    """Stores the GitLab personal access token outside the state file."""

    token_path: Path
    env: Mapping[str, str] = field(default_factory=lambda: os.environ)
    _cached_token: Optional[str] = None

    def get_token(self) -> Optional[str]:
        env_token = self.env.get(TOKEN_ENV_VAR, "").strip()
        if env_token:
            return env_token
        if self._cached_token:
            return self._cached_token
        if not self.token_path.exists():
            return None
        token = self.token_path.read_text(encoding="utf-8").strip()
        self._cached_token = token or None
        return self._cached_token

    def set_token(self, token: str) -> None:
        token = token.strip()
        if not token:
            raise ValueError("Token cannot be empty.")
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(token, encoding="utf-8")
        # owner read/write only
        self.token_path.chmod(0o600)
        self._cached_token = token
        logger.info("Stored GitLab token at %s", self.token_path)

    def clear_token(self) -> None:
        self._cached_token = None
        if self.token_path.exists():
            self.token_path.unlink()
            logger.info("Removed GitLab token at %s", self.token_path)


__all__ = ["StateStore", "TokenStore", "TOKEN_ENV_VAR"]
