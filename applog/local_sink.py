"""Local durable sink: append-only ring buffer persisted in a DurableStore."""

import json
import threading

from applog.console import ConsoleSink
from applog.errors import StorageReadError, StorageWriteError
from applog.models import LogEntry, entry_from_dict, entry_to_dict
from applog.serializer import to_json
from applog.store import DurableStore

LOGS_KEY = "app_logs"


class LocalLogSink:
    """Keeps the most recent *max_entries* entries under one store key.

    Failures are reported through the console sink and never raised.
    """

    def __init__(
        self,
        store: DurableStore,
        console: ConsoleSink,
        max_entries: int = 1000,
        key: str = LOGS_KEY,
    ):
        self._store = store
        self._console = console
        self._max_entries = max_entries
        self._key = key
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def _load(self) -> list[dict]:
        raw = self._store.get(self._key)
        if not raw:
            return []
        try:
            logs = json.loads(raw)
        except ValueError as exc:
            raise StorageReadError(f"Malformed JSON under {self._key!r}: {exc}") from exc
        if not isinstance(logs, list):
            raise StorageReadError(
                f"Expected a JSON array under {self._key!r}, got {type(logs).__name__}"
            )
        return logs

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            try:
                logs = self._load()
            except StorageReadError as exc:
                # The corrupt blob is replaced by a fresh list below.
                self._console.warn("Discarding unreadable local logs", exc)
                logs = []

            logs.append(entry_to_dict(entry))
            if len(logs) > self._max_entries:
                del logs[: len(logs) - self._max_entries]

            try:
                self._store.set(self._key, to_json(logs))
            except StorageWriteError as exc:
                self._console.warn("Failed to save log to local storage", exc)

    def read_all(self) -> list[LogEntry]:
        with self._lock:
            try:
                return [entry_from_dict(item) for item in self._load()]
            except (StorageReadError, ValueError) as exc:
                self._console.warn("Failed to read logs from local storage", exc)
                return []

    def clear(self) -> None:
        with self._lock:
            try:
                self._store.remove(self._key)
            except StorageWriteError as exc:
                self._console.warn("Failed to clear local logs", exc)
