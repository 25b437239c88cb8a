"""Tests for the configuration module."""

import dataclasses

import pytest

from applog.config import (
    ClientConfig,
    CollectorConfig,
    LoggerConfig,
    default_config,
    load_client_config,
    load_collector_config,
    load_config,
    load_env_overrides,
    load_yaml_config,
)
from applog.levels import Level


def test_logger_config_defaults():
    cfg = LoggerConfig()
    assert cfg.level is Level.DEBUG
    assert cfg.enable_console is True
    assert cfg.enable_remote is True
    assert cfg.remote_endpoint is None
    assert cfg.buffer_size == 50
    assert cfg.flush_interval == 30.0
    assert cfg.enable_local_storage is True
    assert cfg.max_local_entries == 1000
    assert cfg.max_retries == 5
    assert cfg.request_timeout == 10.0
    assert cfg.compress is False
    assert cfg.auth_token_key == "auth_token"


def test_logger_config_is_frozen():
    cfg = LoggerConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.buffer_size = 10


def test_level_name_coerced():
    assert LoggerConfig(level="warning").level is Level.WARN


@pytest.mark.parametrize(
    "overrides",
    [
        {"buffer_size": 0},
        {"flush_interval": 0},
        {"max_local_entries": 0},
        {"max_retries": -1},
        {"retry_backoff": -1.0},
        {"request_timeout": 0},
        {"level": "LOUD"},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        LoggerConfig(**overrides)


class TestBuildModeDefaults:
    def test_development(self):
        cfg = default_config(environ={})
        assert cfg.level is Level.DEBUG
        assert cfg.enable_console is True
        assert cfg.remote_endpoint is None

    def test_production(self):
        cfg = default_config(environ={"APP_ENV": "production"})
        assert cfg.level is Level.INFO
        assert cfg.enable_console is False

    def test_explicit_mode_wins(self):
        cfg = default_config(mode="production", environ={"APP_ENV": "development"})
        assert cfg.level is Level.INFO

    def test_endpoint_from_api_url(self):
        cfg = default_config(environ={"API_URL": "https://api.example.com/"})
        assert cfg.remote_endpoint == "https://api.example.com/api/v1/logs"

    def test_explicit_endpoint_beats_api_url(self):
        cfg = default_config(
            environ={
                "API_URL": "https://api.example.com",
                "LOG_REMOTE_ENDPOINT": "https://logs.example.com/ingest",
            }
        )
        assert cfg.remote_endpoint == "https://logs.example.com/ingest"


class TestYamlConfig:
    def test_no_path(self):
        assert load_yaml_config(None) == {}

    def test_missing_file(self, tmp_path):
        assert load_yaml_config(str(tmp_path / "absent.yaml")) == {}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("level: [unclosed\n")
        assert load_yaml_config(str(path)) == {}

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")
        assert load_yaml_config(str(path)) == {}

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "logger.yaml"
        path.write_text("buffer_size: 5\ncolour: blue\n")
        assert load_yaml_config(str(path)) == {"buffer_size": 5}


class TestLoadConfig:
    def test_env_overrides(self):
        cfg = load_config(
            environ={
                "LOG_LEVEL": "error",
                "LOG_BUFFER_SIZE": "7",
                "LOG_FLUSH_INTERVAL": "2.5",
                "LOG_ENABLE_REMOTE": "false",
                "LOG_COMPRESS": "yes",
                "LOG_MAX_RETRIES": "unbounded",
                "LOG_STORAGE_DIR": "/var/lib/applog",
            }
        )
        assert cfg.level is Level.ERROR
        assert cfg.buffer_size == 7
        assert cfg.flush_interval == 2.5
        assert cfg.enable_remote is False
        assert cfg.compress is True
        assert cfg.max_retries is None
        assert cfg.storage_dir == "/var/lib/applog"

    def test_env_ignores_unrelated_vars(self):
        assert load_env_overrides({"PATH": "/usr/bin"}) == {}

    def test_yaml_then_env_then_overrides(self, tmp_path):
        path = tmp_path / "logger.yaml"
        path.write_text(
            "level: WARN\n"
            "buffer_size: 20\n"
            "flush_interval: 5\n"
            "remote_endpoint: https://yaml.example.com/logs\n"
        )
        cfg = load_config(
            str(path),
            environ={"LOG_BUFFER_SIZE": "30", "LOG_REMOTE_ENDPOINT": "https://env.example.com/logs"},
            flush_interval=1.0,
        )
        assert cfg.level is Level.WARN
        assert cfg.buffer_size == 30
        assert cfg.flush_interval == 1.0
        assert cfg.remote_endpoint == "https://env.example.com/logs"

    def test_path_from_environment(self, tmp_path):
        path = tmp_path / "logger.yaml"
        path.write_text("max_local_entries: 10\n")
        cfg = load_config(environ={"LOG_CONFIG_PATH": str(path)})
        assert cfg.max_local_entries == 10

    def test_production_defaults_kept_under_yaml(self, tmp_path):
        path = tmp_path / "logger.yaml"
        path.write_text("buffer_size: 10\n")
        cfg = load_config(str(path), environ={"APP_ENV": "production"})
        assert cfg.level is Level.INFO
        assert cfg.enable_console is False
        assert cfg.buffer_size == 10


def test_collector_config_defaults():
    cfg = load_collector_config({})
    assert cfg == CollectorConfig()
    assert cfg.port == 8080
    assert cfg.auth_token is None


def test_collector_config_from_env():
    cfg = load_collector_config(
        {
            "COLLECTOR_HOST": "127.0.0.1",
            "COLLECTOR_PORT": "9090",
            "COLLECTOR_MAX_LOGS": "50",
            "COLLECTOR_AUTH_TOKEN": "secret",
        }
    )
    assert cfg.host == "127.0.0.1"
    assert cfg.port == 9090
    assert cfg.max_logs == 50
    assert cfg.auth_token == "secret"


class TestClientConfig:
    def test_defaults(self):
        cfg = load_client_config([], environ={})
        assert isinstance(cfg, ClientConfig)
        assert cfg.logs_per_second == 5
        assert cfg.run_time == 30
        assert cfg.auth_token is None
        assert cfg.logger.buffer_size == 50

    def test_cli_args_override(self):
        cfg = load_client_config(
            [
                "--endpoint", "http://localhost:8080/api/v1/logs",
                "--level", "info",
                "--buffer-size", "10",
                "--flush-interval", "2",
                "--logs-per-second", "20",
                "--run-time", "3",
                "--no-console",
            ],
            environ={"LOG_BUFFER_SIZE": "99", "LOGS_PER_SECOND": "1"},
        )
        assert cfg.logger.remote_endpoint == "http://localhost:8080/api/v1/logs"
        assert cfg.logger.level is Level.INFO
        assert cfg.logger.buffer_size == 10
        assert cfg.logger.flush_interval == 2.0
        assert cfg.logger.enable_console is False
        assert cfg.logs_per_second == 20
        assert cfg.run_time == 3

    def test_env_fallbacks(self):
        cfg = load_client_config(
            [],
            environ={"LOGS_PER_SECOND": "8", "RUN_TIME": "12", "COLLECTOR_AUTH_TOKEN": "tok"},
        )
        assert cfg.logs_per_second == 8
        assert cfg.run_time == 12
        assert cfg.auth_token == "tok"
