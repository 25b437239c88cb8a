"""Tests for the collector Flask app."""

import gzip
import json

import pytest

from applog.collector import LOGS_ROUTE, LogStore, create_app


@pytest.fixture
def app():
    app = create_app(LogStore(max_size=100))
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _entry(message, level="INFO", second=0):
    return {
        "timestamp": f"2024-05-01T10:00:{second:02d}.000Z",
        "level": level,
        "message": message,
        "sessionId": "1714557600000-abc123xyz",
    }


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "healthy"
        assert data["total_logs"] == 0
        assert data["current_stored"] == 0


class TestIngestion:
    def test_batch_accepted(self, client, app):
        body = {"logs": [_entry("a"), _entry("b", "WARN", 1)]}
        resp = client.post(LOGS_ROUTE, json=body)
        assert resp.status_code == 202
        assert resp.get_json() == {"status": "accepted", "count": 2}

        store = app.config["LOG_STORE"]
        assert store.total_count == 2
        assert store.batch_count == 1

    def test_gzip_body(self, client, app):
        raw = json.dumps({"logs": [_entry("zipped")]}).encode("utf-8")
        resp = client.post(
            LOGS_ROUTE,
            data=gzip.compress(raw),
            headers={"Content-Type": "application/json", "Content-Encoding": "gzip"},
        )
        assert resp.status_code == 202
        assert app.config["LOG_STORE"].get_recent(1)[0]["message"] == "zipped"

    @pytest.mark.parametrize(
        "body",
        [b"not json", b"[]", b'{"logs": "nope"}', b'{"logs": [{"message": "no level"}]}'],
    )
    def test_invalid_body_rejected(self, client, body):
        resp = client.post(LOGS_ROUTE, data=body, content_type="application/json")
        assert resp.status_code == 400
        assert resp.get_json()["status"] == "invalid"

    def test_entries_are_normalized(self, client, app):
        entry = _entry("lower")
        entry["level"] = "warning"
        client.post(LOGS_ROUTE, json={"logs": [entry]})
        assert app.config["LOG_STORE"].get_recent(1)[0]["level"] == "WARN"


class TestAuthentication:
    @pytest.fixture
    def client(self):
        return create_app(auth_token="s3cret").test_client()

    def test_missing_token(self, client):
        resp = client.post(LOGS_ROUTE, json={"logs": [_entry("a")]})
        assert resp.status_code == 401

    def test_wrong_token(self, client):
        resp = client.post(
            LOGS_ROUTE,
            json={"logs": [_entry("a")]},
            headers={"Authorization": "Bearer wrong"},
        )
        assert resp.status_code == 401

    def test_valid_token(self, client):
        resp = client.post(
            LOGS_ROUTE,
            json={"logs": [_entry("a")]},
            headers={"Authorization": "Bearer s3cret"},
        )
        assert resp.status_code == 202


class TestQuery:
    def test_most_recent_first(self, client):
        client.post(LOGS_ROUTE, json={"logs": [_entry(f"m{i}", second=i) for i in range(5)]})
        resp = client.get(f"{LOGS_ROUTE}?limit=3")
        assert resp.status_code == 200
        assert [e["message"] for e in resp.get_json()["logs"]] == ["m4", "m3", "m2"]

    def test_level_filter(self, client):
        client.post(
            LOGS_ROUTE,
            json={"logs": [_entry("ok"), _entry("bad", "ERROR", 1), _entry("fine", "INFO", 2)]},
        )
        resp = client.get(f"{LOGS_ROUTE}?level=error")
        assert [e["message"] for e in resp.get_json()["logs"]] == ["bad"]

    @pytest.mark.parametrize("query", ["limit=many", "level=LOUD"])
    def test_bad_query(self, client, query):
        resp = client.get(f"{LOGS_ROUTE}?{query}")
        assert resp.status_code == 400


class TestLogStore:
    def test_bounded(self):
        store = LogStore(max_size=3)
        store.add_batch([_entry(f"m{i}") for i in range(5)])
        assert store.current_size == 3
        assert store.total_count == 5
        assert [e["message"] for e in store.get_recent(10)] == ["m4", "m3", "m2"]
