"""Console sink: human-readable, synchronous output through the logging module."""

import logging
import threading
import time

from applog.levels import Level
from applog.models import LogEntry, parse_timestamp
from applog.serializer import to_json

CHANNEL_NAME = "applog.console"

_LEVEL_METHODS = {
    Level.DEBUG: "debug",
    Level.INFO: "info",
    Level.WARN: "warning",
    Level.ERROR: "error",
}


def format_entry(entry: LogEntry) -> str:
    """Render ``[HH:MM:SS] LEVEL: message [context-json] [stack]`` in local time."""
    try:
        local_time = parse_timestamp(entry.timestamp).astimezone().strftime("%H:%M:%S")
    except ValueError:
        local_time = entry.timestamp

    parts = [f"[{local_time}] {entry.level.name}: {entry.message}"]
    if entry.context is not None:
        parts.append(to_json(dict(entry.context)))
    if entry.error is not None:
        parts.append(entry.error.stack or entry.error.message)
    return " ".join(parts)


class ConsoleSink:
    """Writes entries to the ``applog.console`` logger.

    Also the only route for the subsystem's own failure reports (``warn``), so
    a broken store or endpoint can never feed back into the durable sinks.
    """

    def __init__(self, channel: logging.Logger | None = None):
        self._channel = channel or logging.getLogger(CHANNEL_NAME)
        self._timers: dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def channel(self) -> logging.Logger:
        return self._channel

    def write(self, entry: LogEntry) -> None:
        method = getattr(self._channel, _LEVEL_METHODS[entry.level])
        method("%s", format_entry(entry))

    def warn(self, message: str, exc: BaseException | None = None) -> None:
        if exc is None:
            self._channel.warning("%s", message)
        else:
            self._channel.warning("%s: %s", message, exc)

    # Timing

    def time(self, label: str) -> None:
        with self._lock:
            self._timers[label] = time.perf_counter()

    def time_end(self, label: str, report: bool = True) -> float | None:
        """Stop the timer *label* and return elapsed milliseconds.

        With *report* the duration is also written to the console channel.
        Returns None (and warns) when no such timer was started.
        """
        with self._lock:
            started = self._timers.pop(label, None)
        if started is None:
            self.warn(f"Timer '{label}' does not exist")
            return None
        elapsed_ms = (time.perf_counter() - started) * 1000
        if report:
            self._channel.debug("%s: %.3f ms", label, elapsed_ms)
        return elapsed_ms
