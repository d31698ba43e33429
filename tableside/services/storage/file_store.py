"""
File Key-Value Store with Concurrency Control

Keeps every key in one JSON document on local disk. A FileLock serializes
read-modify-write cycles so several worker processes on the same machine
can share the file.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout

from tableside.exceptions import StorageError
from tableside.services.storage.base import BaseKeyValueStore

logger = logging.getLogger(__name__)


class FileKeyValueStore(BaseKeyValueStore):
    """
    JSON-file backed store.

    Attributes:
        path: Location of the JSON document
        lock_timeout: Seconds to wait for the sibling ``.lock`` file
    """

    def __init__(self, path: str, lock_timeout: int = 10):
        self.path = Path(path)
        self.lock_timeout = lock_timeout
        self._lock = FileLock(f"{self.path}.lock", timeout=lock_timeout)
        logger.info(f"FileKeyValueStore initialized ({self.path})")

    @property
    def provider_name(self) -> str:
        return "file"

    def _ensure_data_dir(self) -> None:
        if not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {self.path.parent}")

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding unreadable store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Discarding store {self.path}: expected an object")
            return {}
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        tmp_path.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        try:
            with self._lock:
                value = self._read_all().get(key)
        except (Timeout, OSError) as e:
            raise StorageError(f"Cannot read {key} from {self.path}: {e}") from e
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        self._ensure_data_dir()
        try:
            with self._lock:
                data = self._read_all()
                data[key] = value
                self._write_all(data)
        except (Timeout, OSError) as e:
            raise StorageError(f"Cannot write {key} to {self.path}: {e}") from e

    def remove(self, key: str) -> None:
        if not self.path.exists():
            return
        try:
            with self._lock:
                data = self._read_all()
                if data.pop(key, None) is not None:
                    self._write_all(data)
        except (Timeout, OSError) as e:
            raise StorageError(f"Cannot remove {key} from {self.path}: {e}") from e

    def health_check(self) -> bool:
        try:
            self._ensure_data_dir()
            with self._lock:
                return True
        except (Timeout, OSError) as e:
            logger.error(f"Cart file store health check failed: {e}")
            return False
