"""JSON-file key/value store standing in for browser local storage."""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class LocalStore:
    """Best-effort persistent key/value store. Never raises on I/O errors."""

    def __init__(self, path: Path | None = None):
        self.path = Path(path) if path else None
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read local store {self.path}: {e}")
            return {}

    def _flush(self) -> bool:
        if self.path is None:
            return True
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self._data, f, default=str)
            tmp.replace(self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write local store {self.path}: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> bool:
        self._data[key] = value
        return self._flush()

    def remove(self, key: str) -> bool:
        self._data.pop(key, None)
        return self._flush()

    def clear(self) -> bool:
        self._data = {}
        return self._flush()

    def append_history(self, key: str, user_id: str | None, entry: dict) -> bool:
        """Append an entry to a per-user history list (stored oldest first)."""
        histories = self.get(key, {})
        if not isinstance(histories, dict):
            histories = {}
        bucket = user_id or "anonymous"
        histories.setdefault(bucket, []).append(entry)
        return self.set(key, histories)

    def get_history(self, key: str, user_id: str | None) -> list[dict]:
        """Per-user history, most recent first."""
        histories = self.get(key, {})
        if not isinstance(histories, dict):
            return []
        return list(reversed(histories.get(user_id or "anonymous", [])))
