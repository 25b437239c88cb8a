"""Log collector: Flask endpoint receiving batches from RemoteBatchSink."""

import collections
import logging
import threading

from flask import Flask, jsonify, request

from applog.levels import parse_level
from applog.models import entry_from_dict, entry_to_dict
from applog.serializer import deserialize_batch

logger = logging.getLogger(__name__)

LOGS_ROUTE = "/api/v1/logs"


class LogStore:
    """Thread-safe in-memory log storage backed by a bounded deque."""

    def __init__(self, max_size=1000):
        self._logs = collections.deque(maxlen=max_size)
        self._lock = threading.Lock()
        self._total_count = 0
        self._batch_count = 0

    def add_batch(self, entries):
        """Append wire-form entries and count the batch."""
        with self._lock:
            self._logs.extend(entries)
            self._total_count += len(entries)
            self._batch_count += 1

    def get_recent(self, count=50, level=None):
        """Return up to `count` entries, most recent first, optionally at one level."""
        with self._lock:
            logs = list(self._logs)
        if level is not None:
            logs = [entry for entry in logs if entry["level"] == level.name]
        return logs[::-1][:count]

    @property
    def total_count(self):
        """Total number of log entries ever received."""
        with self._lock:
            return self._total_count

    @property
    def batch_count(self):
        with self._lock:
            return self._batch_count

    @property
    def current_size(self):
        """Number of log entries currently held in the store."""
        with self._lock:
            return len(self._logs)


def create_app(store: LogStore | None = None, auth_token: str | None = None) -> Flask:
    """Flask application factory.

    When *auth_token* is set, POSTs must carry ``Authorization: Bearer <token>``.
    """
    app = Flask(__name__)
    store = store if store is not None else LogStore()
    app.config["LOG_STORE"] = store

    @app.route("/health")
    def health():
        return jsonify({
            "status": "healthy",
            "total_logs": store.total_count,
            "current_stored": store.current_size,
        })

    @app.route(LOGS_ROUTE, methods=["POST"])
    def ingest_logs():
        if auth_token is not None:
            if request.headers.get("Authorization") != f"Bearer {auth_token}":
                return jsonify({"status": "unauthorized"}), 401

        compressed = request.headers.get("Content-Encoding", "").lower() == "gzip"
        try:
            raw_entries = deserialize_batch(request.get_data(), compressed=compressed)
            entries = [entry_to_dict(entry_from_dict(item)) for item in raw_entries]
        except ValueError as exc:
            logger.warning("Rejected log batch: %s", exc)
            return jsonify({"status": "invalid", "error": str(exc)}), 400

        store.add_batch(entries)
        logger.info("Accepted batch of %d log entries", len(entries))
        return jsonify({"status": "accepted", "count": len(entries)}), 202

    @app.route(LOGS_ROUTE, methods=["GET"])
    def list_logs():
        try:
            limit = int(request.args.get("limit", 50))
            level = request.args.get("level")
            level = parse_level(level) if level else None
        except ValueError as exc:
            return jsonify({"status": "invalid", "error": str(exc)}), 400
        return jsonify({"logs": store.get_recent(limit, level)})

    return app
