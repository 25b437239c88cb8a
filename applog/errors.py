"""Failure taxonomy for the telemetry subsystem.

None of these escape a log call: stores and the transport raise them, and the
sinks downgrade them to console warnings where they originate.
"""


class TelemetryError(Exception):
    """Base class for internal telemetry failures."""


class StorageWriteError(TelemetryError):
    """Persisting to the durable store failed (quota, I/O, serialization)."""


class StorageReadError(TelemetryError):
    """Reading from the durable store failed or the stored blob is malformed."""


class RemoteDeliveryError(TelemetryError):
    """A batch could not be delivered to the remote endpoint."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
