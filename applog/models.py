"""Log entry model."""

import datetime
import traceback
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from applog.levels import Level, parse_level


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime.datetime:
    return datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class ErrorInfo:
    message: str
    stack: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorInfo":
        stack = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        ).rstrip()
        return cls(message=str(exc), stack=stack, name=type(exc).__name__)

    def to_dict(self) -> dict:
        data = {"message": self.message}
        if self.name is not None:
            data["name"] = self.name
        if self.stack is not None:
            data["stack"] = self.stack
        return data


@dataclass(frozen=True)
class LogEntry:
    level: Level
    message: str
    session_id: str
    timestamp: str = field(default_factory=utc_timestamp)
    context: Optional[Mapping[str, Any]] = None
    user_id: Optional[str] = None
    url: Optional[str] = None
    user_agent: Optional[str] = None
    error: Optional[ErrorInfo] = None

    def __post_init__(self):
        object.__setattr__(self, "level", parse_level(self.level))
        if self.context is not None:
            # Snapshot the caller's dict so later mutation cannot leak in.
            object.__setattr__(self, "context", MappingProxyType(dict(self.context)))


def create_log_entry(
    level,
    message: str,
    session_id: str,
    context: Optional[Mapping[str, Any]] = None,
    error=None,
    user_id: Optional[str] = None,
    url: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> LogEntry:
    """Factory function that creates a LogEntry.

    *error* may be an exception or an already-built ErrorInfo.
    """
    if isinstance(error, BaseException):
        error = ErrorInfo.from_exception(error)
    return LogEntry(
        level=level,
        message=message,
        session_id=session_id,
        context=context,
        user_id=user_id,
        url=url,
        user_agent=user_agent,
        error=error,
    )


def entry_to_dict(entry: LogEntry) -> dict:
    """Convert a LogEntry to its wire form (camelCase keys, absent fields omitted)."""
    data = {
        "timestamp": entry.timestamp,
        "level": entry.level.name,
        "message": entry.message,
    }
    if entry.context is not None:
        data["context"] = dict(entry.context)
    if entry.user_id is not None:
        data["userId"] = entry.user_id
    data["sessionId"] = entry.session_id
    if entry.url is not None:
        data["url"] = entry.url
    if entry.user_agent is not None:
        data["userAgent"] = entry.user_agent
    if entry.error is not None:
        data["error"] = entry.error.to_dict()
    return data


def entry_from_dict(data: Mapping[str, Any]) -> LogEntry:
    """Parse the wire form back into a LogEntry. Raises ValueError if malformed."""
    if not isinstance(data, Mapping):
        raise ValueError(f"Log entry must be an object, got {type(data).__name__}")
    for key in ("timestamp", "level", "message"):
        if not isinstance(data.get(key), str):
            raise ValueError(f"Log entry field {key!r} is missing or not a string")

    context = data.get("context")
    if context is not None and not isinstance(context, Mapping):
        raise ValueError("Log entry field 'context' must be an object")

    error = data.get("error")
    if error is not None:
        if not isinstance(error, Mapping) or "message" not in error:
            raise ValueError("Log entry field 'error' must be an object with a message")
        error = ErrorInfo(
            message=str(error["message"]),
            stack=error.get("stack"),
            name=error.get("name"),
        )

    return LogEntry(
        timestamp=data["timestamp"],
        level=parse_level(data["level"]),
        message=data["message"],
        session_id=str(data.get("sessionId", "")),
        context=context,
        user_id=data.get("userId"),
        url=data.get("url"),
        user_agent=data.get("userAgent"),
        error=error,
    )
