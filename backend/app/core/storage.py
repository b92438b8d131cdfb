"""
Key-value storage for device-local data: session statistics, AI learning
patterns and the guest identifier.

Values are JSON documents, one file per key. I/O problems surface as
`StorageFailure`; callers decide whether to fall back to defaults.
"""

import json
import logging
import os
import random
import string
import time
from typing import Any, Dict, Optional

from backend.app.core.errors import StorageFailure

logger = logging.getLogger(__name__)

GUEST_ID_KEY = "connect4_guest_id"


class JsonFileStore:
    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not os.path.exists(path):
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise StorageFailure(f"Failed to read '{key}': {e}") from e

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path + ".tmp"
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageFailure(f"Failed to write '{key}': {e}") from e

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageFailure(f"Failed to delete '{key}': {e}") from e


class MemoryStore:
    """Process-local store with the same interface, for tests and fallbacks."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return json.loads(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


def generate_guest_id() -> str:
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(random.choice(alphabet) for _ in range(9))
    return f"guest_{int(time.time() * 1000)}_{suffix}"


def get_or_create_guest_id(store) -> str:
    """Stable per-device player id; regenerated only if it cannot be read."""
    try:
        guest_id = store.get(GUEST_ID_KEY)
    except StorageFailure as e:
        logger.warning("Guest id unreadable, generating a new one: %s", e)
        guest_id = None

    if not guest_id:
        guest_id = generate_guest_id()
        try:
            store.set(GUEST_ID_KEY, guest_id)
        except StorageFailure as e:
            logger.warning("Guest id not persisted: %s", e)
    return guest_id
