"""Durable key-value stores holding string blobs.

The sinks only see the DurableStore interface, so the ring buffer and the
identity blob work the same over memory, a directory of files, or anything
else that can get/set/remove strings.
"""

import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod

from applog.errors import StorageReadError, StorageWriteError


class DurableStore(ABC):
    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored blob, or None when the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous blob."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete *key*. Removing an absent key is not an error."""


class MemoryStore(DurableStore):
    """Thread-safe in-process store.

    *quota_bytes* caps the total size of all blobs; a write that would exceed
    it raises StorageWriteError, like a browser storage quota.
    """

    def __init__(self, quota_bytes: int | None = None):
        self._data: dict[str, str] = {}
        self._quota = quota_bytes
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageWriteError(f"Value for {key!r} must be str, got {type(value).__name__}")
        with self._lock:
            if self._quota is not None:
                used = sum(len(v) for k, v in self._data.items() if k != key)
                if used + len(value) > self._quota:
                    raise StorageWriteError(
                        f"Quota exceeded writing {key!r} ({used + len(value)} > {self._quota} bytes)"
                    )
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data


_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileStore(DurableStore):
    """One file per key under *directory*, written atomically (tmp + os.replace)."""

    def __init__(self, directory: str):
        self._directory = directory
        self._lock = threading.Lock()

    @property
    def directory(self) -> str:
        return self._directory

    def _path(self, key: str) -> str:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return os.path.join(self._directory, f"{key}.json")

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageReadError(f"Failed to read {path}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        with self._lock:
            try:
                os.makedirs(self._directory, exist_ok=True)
                fd, tmp = tempfile.mkstemp(dir=self._directory, suffix=".tmp")
            except OSError as exc:
                raise StorageWriteError(f"Failed to write {path}: {exc}") from exc
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp, path)
            except (OSError, TypeError) as exc:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise StorageWriteError(f"Failed to write {path}: {exc}") from exc

    def remove(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                raise StorageWriteError(f"Failed to remove {path}: {exc}") from exc


def build_store(storage_dir: str | None) -> DurableStore:
    """FileStore when a directory is configured, otherwise an in-memory store."""
    if storage_dir:
        return FileStore(storage_dir)
    return MemoryStore()
