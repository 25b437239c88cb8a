"""Configuration module: frozen dataclass built from defaults, YAML, env vars and overrides."""

import argparse
import logging
import os
from dataclasses import dataclass, fields, replace

import yaml

from applog.levels import Level, parse_level

logger = logging.getLogger(__name__)

PRODUCTION = "production"
DEVELOPMENT = "development"
REMOTE_LOGS_PATH = "/api/v1/logs"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _parse_optional_int(value: str) -> int | None:
    if value.strip().lower() in ("", "none", "unbounded"):
        return None
    return int(value)


@dataclass(frozen=True)
class LoggerConfig:
    level: Level = Level.DEBUG
    enable_console: bool = True
    enable_remote: bool = True
    remote_endpoint: str | None = None
    buffer_size: int = 50
    flush_interval: float = 30.0
    enable_local_storage: bool = True
    max_local_entries: int = 1000
    max_retries: int | None = 5
    retry_backoff: float = 1.0
    retry_backoff_max: float = 60.0
    request_timeout: float = 10.0
    compress: bool = False
    storage_dir: str | None = None
    auth_token_key: str = "auth_token"

    def __post_init__(self):
        object.__setattr__(self, "level", parse_level(self.level))
        if self.buffer_size < 1:
            raise ValueError(f"buffer_size must be >= 1, got {self.buffer_size}")
        if self.flush_interval <= 0:
            raise ValueError(f"flush_interval must be > 0, got {self.flush_interval}")
        if self.max_local_entries < 1:
            raise ValueError(
                f"max_local_entries must be >= 1, got {self.max_local_entries}"
            )
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0 or None, got {self.max_retries}")
        if self.retry_backoff < 0 or self.retry_backoff_max < 0:
            raise ValueError("retry_backoff and retry_backoff_max must be >= 0")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be > 0, got {self.request_timeout}")


# env var -> (field, parser)
_ENV_FIELDS = {
    "LOG_LEVEL": ("level", parse_level),
    "LOG_ENABLE_CONSOLE": ("enable_console", _parse_bool),
    "LOG_ENABLE_REMOTE": ("enable_remote", _parse_bool),
    "LOG_REMOTE_ENDPOINT": ("remote_endpoint", str),
    "LOG_BUFFER_SIZE": ("buffer_size", int),
    "LOG_FLUSH_INTERVAL": ("flush_interval", float),
    "LOG_ENABLE_LOCAL_STORAGE": ("enable_local_storage", _parse_bool),
    "LOG_MAX_LOCAL_ENTRIES": ("max_local_entries", int),
    "LOG_MAX_RETRIES": ("max_retries", _parse_optional_int),
    "LOG_RETRY_BACKOFF": ("retry_backoff", float),
    "LOG_RETRY_BACKOFF_MAX": ("retry_backoff_max", float),
    "LOG_REQUEST_TIMEOUT": ("request_timeout", float),
    "LOG_COMPRESS": ("compress", _parse_bool),
    "LOG_STORAGE_DIR": ("storage_dir", str),
    "LOG_AUTH_TOKEN_KEY": ("auth_token_key", str),
}


def _default_endpoint(environ) -> str | None:
    endpoint = environ.get("LOG_REMOTE_ENDPOINT")
    if endpoint:
        return endpoint
    api_url = environ.get("API_URL")
    if api_url:
        return api_url.rstrip("/") + REMOTE_LOGS_PATH
    return None


def default_config(mode: str | None = None, environ=None) -> LoggerConfig:
    """Build-mode defaults: production logs INFO+ without console output,
    development logs everything to the console."""
    if environ is None:
        environ = os.environ
    if mode is None:
        mode = environ.get("APP_ENV", DEVELOPMENT)

    production = mode.strip().lower() == PRODUCTION
    return LoggerConfig(
        level=Level.INFO if production else Level.DEBUG,
        enable_console=not production,
        remote_endpoint=_default_endpoint(environ),
    )


def load_yaml_config(path: str | None) -> dict:
    """Load logger settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as exc:
        logger.warning("Invalid YAML in %s, using defaults: %s", path, exc)
        return {}

    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping, using defaults", path)
        return {}

    known = {f.name for f in fields(LoggerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", path, ", ".join(unknown))
    logger.info("Loaded YAML config from %s", path)
    return {key: value for key, value in data.items() if key in known}


def load_env_overrides(environ=None) -> dict:
    """Collect LOG_* environment variables into LoggerConfig keyword arguments."""
    if environ is None:
        environ = os.environ
    values = {}
    for name, (field_name, parser) in _ENV_FIELDS.items():
        raw = environ.get(name)
        if raw is not None:
            values[field_name] = parser(raw)
    return values


def load_config(path: str | None = None, environ=None, **overrides) -> LoggerConfig:
    """Build LoggerConfig from defaults <- YAML file <- env vars <- overrides.

    The YAML path falls back to ``LOG_CONFIG_PATH``. Pass *environ* for
    testability; when None, os.environ is read.
    """
    if environ is None:
        environ = os.environ
    if path is None:
        path = environ.get("LOG_CONFIG_PATH")

    values = load_yaml_config(path)
    values.update(load_env_overrides(environ))
    values.update(overrides)
    return replace(default_config(environ=environ), **values)


@dataclass(frozen=True)
class CollectorConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    max_logs: int = 1000
    auth_token: str | None = None


def load_collector_config(environ=None) -> CollectorConfig:
    """Build CollectorConfig from environment variables with sensible defaults."""
    if environ is None:
        environ = os.environ
    return CollectorConfig(
        host=environ.get("COLLECTOR_HOST", CollectorConfig.host),
        port=int(environ.get("COLLECTOR_PORT", CollectorConfig.port)),
        max_logs=int(environ.get("COLLECTOR_MAX_LOGS", CollectorConfig.max_logs)),
        auth_token=environ.get("COLLECTOR_AUTH_TOKEN") or None,
    )


@dataclass(frozen=True)
class ClientConfig:
    logger: LoggerConfig
    logs_per_second: int = 5
    run_time: int = 30
    auth_token: str | None = None


def load_client_config(argv=None, environ=None) -> ClientConfig:
    """Build the demo client's config: logger settings first, then CLI flags.

    Pass argv for testability; when None, argparse reads sys.argv.
    """
    if environ is None:
        environ = os.environ

    parser = argparse.ArgumentParser(description="applog demo client")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--endpoint", type=str, default=None)
    parser.add_argument("--level", type=str, default=None)
    parser.add_argument("--buffer-size", type=int, default=None)
    parser.add_argument("--flush-interval", type=float, default=None)
    parser.add_argument("--storage-dir", type=str, default=None)
    parser.add_argument("--logs-per-second", type=int, default=None)
    parser.add_argument("--run-time", type=int, default=None)
    parser.add_argument("--no-console", action="store_true", default=False)

    args = parser.parse_args(argv)

    overrides = {}
    if args.endpoint is not None:
        overrides["remote_endpoint"] = args.endpoint
    if args.level is not None:
        overrides["level"] = args.level
    if args.buffer_size is not None:
        overrides["buffer_size"] = args.buffer_size
    if args.flush_interval is not None:
        overrides["flush_interval"] = args.flush_interval
    if args.storage_dir is not None:
        overrides["storage_dir"] = args.storage_dir
    if args.no_console:
        overrides["enable_console"] = False

    return ClientConfig(
        logger=load_config(args.config, environ, **overrides),
        logs_per_second=(
            args.logs_per_second
            if args.logs_per_second is not None
            else int(environ.get("LOGS_PER_SECOND", ClientConfig.logs_per_second))
        ),
        run_time=(
            args.run_time
            if args.run_time is not None
            else int(environ.get("RUN_TIME", ClientConfig.run_time))
        ),
        auth_token=environ.get("COLLECTOR_AUTH_TOKEN") or None,
    )
