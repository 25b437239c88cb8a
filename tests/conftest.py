import logging
import threading
import time

import pytest

from applog.config import LoggerConfig
from applog.console import CHANNEL_NAME
from applog.error_capture import ErrorSource
from applog.errors import RemoteDeliveryError
from applog.logger import Logger
from applog.serializer import deserialize_batch
from applog.store import MemoryStore

ENDPOINT = "https://collector.test/api/v1/logs"


class FakeTransport:
    """Records every POST. The next ``failures`` sends raise RemoteDeliveryError.

    When ``gate`` is set to an Event, send blocks until it is set.
    """

    def __init__(self):
        self.requests: list[tuple[str, bytes, dict]] = []
        self.failures = 0
        self.gate: threading.Event | None = None
        self.closed = False
        self._lock = threading.Lock()

    def send(self, url, body, headers):
        if self.gate is not None:
            self.gate.wait(timeout=5)
        with self._lock:
            self.requests.append((url, body, dict(headers)))
            if self.failures:
                self.failures -= 1
                raise RemoteDeliveryError("connection refused")
        return 200

    def batches(self) -> list[list[dict]]:
        with self._lock:
            requests = list(self.requests)
        return [
            deserialize_batch(body, compressed=headers.get("Content-Encoding") == "gzip")
            for _, body, headers in requests
        ]

    def close(self):
        self.closed = True


class FakeErrorSource(ErrorSource):
    """Lets tests push host events straight into a registered observer."""

    def __init__(self):
        self.observer = None
        self.unregistered = False

    def register(self, observer):
        self.observer = observer

        def unregister():
            self.unregistered = True
            self.observer = None

        return unregister

    def emit(self, event):
        if self.observer is not None:
            self.observer(event)


def wait_for(predicate, timeout=5.0, interval=0.01) -> bool:
    """Poll *predicate* until it is true or *timeout* elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def error_source():
    return FakeErrorSource()


@pytest.fixture
def console_log(caplog):
    """caplog with the console channel opened down to DEBUG."""
    caplog.set_level(logging.DEBUG, logger=CHANNEL_NAME)
    return caplog


@pytest.fixture
def console_warnings(console_log):
    """Callable returning the WARNING messages written to the console channel."""

    def collect() -> list[str]:
        return [
            record.getMessage()
            for record in console_log.records
            if record.name == CHANNEL_NAME and record.levelno == logging.WARNING
        ]

    return collect


@pytest.fixture
def make_logger(store, transport, error_source):
    """Factory for Loggers wired to the fake transport and in-memory store."""
    created: list[Logger] = []

    def factory(console=None, host_info=None, **overrides):
        settings = {
            "level": "DEBUG",
            "enable_console": True,
            "enable_remote": True,
            "remote_endpoint": ENDPOINT,
            "buffer_size": 50,
            "flush_interval": 60.0,
            "max_retries": None,
            "retry_backoff": 0.0,
        }
        settings.update(overrides)
        kwargs = {}
        if host_info is not None:
            kwargs["host_info"] = host_info
        logger = Logger(
            LoggerConfig(**settings),
            store=store,
            transport=transport,
            error_source=error_source,
            console=console,
            **kwargs,
        )
        created.append(logger)
        return logger

    yield factory

    for logger in created:
        logger.destroy()
