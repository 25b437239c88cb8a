"""Batch serializer: JSON serialization with optional gzip compression."""

import datetime
import gzip
import json


def json_default(value):
    """Fallback encoder for context values json cannot serialize natively."""
    if isinstance(value, BaseException):
        return {"name": type(value).__name__, "message": str(value)}
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def to_json(value) -> str:
    """Serialize *value* compactly, never failing on exotic context values."""
    return json.dumps(value, default=json_default, separators=(",", ":"))


def serialize_batch(entries: list[dict], compress: bool = False) -> bytes:
    """Serialize wire-form entries into a ``{"logs": [...]}`` request body.

    When *compress* is True the body is gzip-compressed; the caller is
    responsible for sending ``Content-Encoding: gzip`` alongside it.
    """
    payload = to_json({"logs": entries}).encode("utf-8")

    if compress:
        return gzip.compress(payload)

    return payload


def deserialize_batch(data: bytes, compressed: bool = False) -> list[dict]:
    """Deserialize a body produced by *serialize_batch* back to the entry list.

    Raises ValueError when the body is not a ``{"logs": [...]}`` object.
    """
    if compressed:
        try:
            data = gzip.decompress(data)
        except OSError as exc:
            raise ValueError(f"Invalid gzip body: {exc}") from exc

    body = json.loads(data)
    if not isinstance(body, dict) or not isinstance(body.get("logs"), list):
        raise ValueError('Body must be an object with a "logs" array')
    return body["logs"]
