"""
Local Store Module

Synchronous string key/value stores used underneath the expiring cache.
Both stores enforce a capacity limit and raise QuotaExceededError when a
write would exceed it.
"""

import errno
import json
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from src.errors import CacheError, QuotaExceededError

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_CAPACITY_BYTES = 5 * 1024 * 1024


def _entry_size(key: str, value: str) -> int:
    # Approximate UTF-16 footprint, same accounting browsers use for localStorage
    return (len(key) + len(value)) * 2


class LocalStore(ABC):
    """Minimal key/value interface the cache depends on."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass


class MemoryStore(LocalStore):
    """In-process store with a byte capacity."""

    def __init__(self, capacity_bytes: Optional[int] = DEFAULT_CAPACITY_BYTES):
        self.capacity_bytes = capacity_bytes
        self._items: Dict[str, str] = {}
        self._used = 0

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        previous = self._items.get(key)
        freed = _entry_size(key, previous) if previous is not None else 0
        needed = self._used - freed + _entry_size(key, value)
        if self.capacity_bytes is not None and needed > self.capacity_bytes:
            raise QuotaExceededError(
                f"Writing {key} needs {needed} bytes, capacity is {self.capacity_bytes}"
            )
        self._items[key] = value
        self._used = needed

    def remove_item(self, key: str) -> None:
        previous = self._items.pop(key, None)
        if previous is not None:
            self._used -= _entry_size(key, previous)

    def keys(self) -> List[str]:
        return list(self._items.keys())

    @property
    def used_bytes(self) -> int:
        return self._used


class JsonFileStore(LocalStore):
    """
    Store persisted as a single JSON object on disk.

    Every mutation rewrites the file through a temp file and an atomic move,
    so a crash mid-write never leaves a truncated store behind.
    """

    def __init__(self, file_path: str, capacity_bytes: Optional[int] = DEFAULT_CAPACITY_BYTES):
        self.file_path = file_path
        self.capacity_bytes = capacity_bytes
        self._items = self._load()

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.file_path):
            logger.info(f"Store file {self.file_path} not found, starting empty")
            return {}

        try:
            with open(self.file_path, 'r', encoding='utf-8') as store_file:
                data = json.load(store_file)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Could not read store file {self.file_path}, starting empty: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Invalid store structure in {self.file_path}, starting empty")
            return {}

        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, items: Dict[str, str]) -> None:
        dir_name = os.path.dirname(self.file_path) or '.'
        os.makedirs(dir_name, exist_ok=True)

        temp_file = None
        temp_path = None
        try:
            fd, temp_path = tempfile.mkstemp(dir=dir_name)
            temp_file = os.fdopen(fd, 'w', encoding='utf-8')
            json.dump(items, temp_file, ensure_ascii=False)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_file.close()
            temp_file = None

            shutil.move(temp_path, self.file_path)
            temp_path = None
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise QuotaExceededError(f"No space left writing {self.file_path}") from e
            raise CacheError(f"Failed to write store file {self.file_path}: {e}") from e
        finally:
            if temp_file:
                temp_file.close()
            if temp_path and os.path.exists(temp_path):
                os.unlink(temp_path)

    def _size(self, items: Dict[str, str]) -> int:
        return sum(_entry_size(k, v) for k, v in items.items())

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        updated = dict(self._items)
        updated[key] = value
        if self.capacity_bytes is not None:
            size = self._size(updated)
            if size > self.capacity_bytes:
                raise QuotaExceededError(
                    f"Writing {key} needs {size} bytes, capacity is {self.capacity_bytes}"
                )
        self._save(updated)
        self._items = updated

    def remove_item(self, key: str) -> None:
        if key not in self._items:
            return
        updated = dict(self._items)
        del updated[key]
        self._save(updated)
        self._items = updated

    def keys(self) -> List[str]:
        return list(self._items.keys())
