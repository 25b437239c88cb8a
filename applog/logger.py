"""Logger facade: wires the level filter, enricher and sinks together.

Applications build one Logger at startup (``create_logger``) and pass it
around. ``get_logger`` offers a shared default instance for call sites that
cannot receive one; it is created lazily on first use, never at import.
"""

import dataclasses
import inspect
import threading
import time
from typing import Any, Callable, Mapping, Optional

from applog.config import LoggerConfig, load_config
from applog.console import ConsoleSink
from applog.context import CURRENT_USER_KEY, ContextEnricher, HostInfo, no_host_info
from applog.error_capture import (
    BEFORE_UNLOAD,
    ERROR,
    UNHANDLED_REJECTION,
    ErrorSource,
    HostEvent,
    NullErrorSource,
)
from applog.errors import StorageWriteError
from applog.levels import Level, should_log
from applog.local_sink import LocalLogSink
from applog.metrics import MetricsCollector
from applog.models import ErrorInfo, LogEntry
from applog.remote_sink import RemoteBatchSink, RetryPolicy
from applog.serializer import to_json
from applog.store import DurableStore, build_store
from applog.transport import HttpTransport


class Logger:
    """Leveled, enriched logging fanned out to console, local store and remote endpoint.

    No method raises into the caller: sink failures become console warnings.
    """

    def __init__(
        self,
        config: LoggerConfig | None = None,
        *,
        store: DurableStore | None = None,
        transport=None,
        error_source: ErrorSource | None = None,
        host_info: Callable[[], HostInfo] = no_host_info,
        console: ConsoleSink | None = None,
        session_id: str | None = None,
    ):
        self._config = config if config is not None else load_config()
        self._store = store if store is not None else build_store(self._config.storage_dir)
        self._console = console or ConsoleSink()
        self._enricher = ContextEnricher(self._store, session_id=session_id, host_info=host_info)
        self._metrics = MetricsCollector()
        self._local = LocalLogSink(
            self._store, self._console, max_entries=self._config.max_local_entries
        )
        self._destroyed = False
        self._lock = threading.Lock()

        self._remote: RemoteBatchSink | None = None
        if self._config.enable_remote and self._config.remote_endpoint:
            self._remote = RemoteBatchSink(
                endpoint=self._config.remote_endpoint,
                transport=transport or HttpTransport(timeout=self._config.request_timeout),
                store=self._store,
                console=self._console,
                buffer_size=self._config.buffer_size,
                flush_interval=self._config.flush_interval,
                retry_policy=RetryPolicy(
                    max_retries=self._config.max_retries,
                    backoff=self._config.retry_backoff,
                    backoff_max=self._config.retry_backoff_max,
                ),
                metrics=self._metrics,
                compress=self._config.compress,
                auth_token_key=self._config.auth_token_key,
            )
            self._remote.start()

        self._error_source = error_source or NullErrorSource()
        self._unregister_hooks = self._error_source.register(self._on_host_event)

    # ------------------------------------------------------------------
    # Core pipeline
    # ------------------------------------------------------------------

    def _log(
        self,
        level: Level,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
        error=None,
    ) -> None:
        if not should_log(level, self._config.level):
            return

        try:
            entry = self._enricher.create_entry(level, message, context, error)
        except Exception as exc:
            self._console.warn("Failed to create log entry", exc)
            return

        if self._config.enable_console:
            self._dispatch("console", self._console.write, entry)
        if self._remote is not None:
            self._dispatch("remote", self._remote.add, entry)
        if self._config.enable_local_storage:
            self._dispatch("local storage", self._local.append, entry)

    def _dispatch(self, sink_name: str, write: Callable[[LogEntry], Any], entry: LogEntry):
        """Hand *entry* to one sink so a failure there cannot reach the others."""
        try:
            write(entry)
        except Exception as exc:
            self._console.warn(f"The {sink_name} sink failed", exc)

    def _on_host_event(self, event: HostEvent) -> None:
        if event.kind == BEFORE_UNLOAD:
            if self._remote is not None:
                self._remote.flush(trigger="unload", force=True)
        elif event.kind == ERROR:
            self.error(
                "Global error caught",
                {
                    "message": event.message,
                    "filename": event.filename,
                    "lineno": event.lineno,
                    "colno": event.colno,
                },
                event.error,
            )
        elif event.kind == UNHANDLED_REJECTION:
            self.error(
                "Unhandled async exception",
                {
                    "reason": event.reason,
                    "task": repr(event.task) if event.task is not None else None,
                },
                event.error,
            )

    # ------------------------------------------------------------------
    # Leveled logging
    # ------------------------------------------------------------------

    def debug(self, message: str, context: Optional[Mapping[str, Any]] = None, error=None):
        self._log(Level.DEBUG, message, context, error)

    def info(self, message: str, context: Optional[Mapping[str, Any]] = None, error=None):
        self._log(Level.INFO, message, context, error)

    def warn(self, message: str, context: Optional[Mapping[str, Any]] = None, error=None):
        self._log(Level.WARN, message, context, error)

    def error(self, message: str, context: Optional[Mapping[str, Any]] = None, error=None):
        self._log(Level.ERROR, message, context, error)

    # ------------------------------------------------------------------
    # Specialized helpers
    # ------------------------------------------------------------------

    def time(self, label: str) -> None:
        self._console.time(label)

    def time_end(self, label: str, context: Optional[Mapping[str, Any]] = None) -> None:
        """Stop the console timer and log an INFO summary carrying its duration."""
        elapsed_ms = self._console.time_end(label, report=self._config.enable_console)
        summary = dict(context or {})
        if elapsed_ms is not None:
            summary["duration"] = round(elapsed_ms)
        self.info(f"Timer: {label}", summary)

    def user_action(self, action: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self.info(f"User action: {action}", {"action": action, **(context or {})})

    def api_call(
        self,
        method: str,
        url: str,
        status: int | None = None,
        duration: float | None = None,
    ) -> None:
        """INFO for successful calls, ERROR once the status is 400 or above."""
        level = Level.ERROR if status is not None and status >= 400 else Level.INFO
        context = {"method": method, "url": url}
        if status is not None:
            context["status"] = status
        if duration is not None:
            context["duration"] = duration
        self._log(level, f"API {method} {url}", context)

    def page_view(self, page: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self.info(f"Page view: {page}", {"page": page, **(context or {})})

    def set_user(self, user) -> None:
        """Persist ``{id, email?, name?}`` for enrichment; None clears it.

        A bare string is taken as the user id.
        """
        if user is None:
            try:
                self._store.remove(CURRENT_USER_KEY)
            except StorageWriteError as exc:
                self._console.warn("Failed to clear user context", exc)
                return
            self.info("User context cleared")
            return

        if isinstance(user, str):
            user = {"id": user}
        if not isinstance(user, Mapping):
            self._console.warn(f"Ignoring user context of type {type(user).__name__}")
            return
        if user.get("id") is None:
            self._console.warn("Ignoring user context without an id")
            return

        record = {"id": str(user["id"])}
        for key in ("email", "name"):
            if user.get(key) is not None:
                record[key] = user[key]

        try:
            self._store.set(CURRENT_USER_KEY, to_json(record))
        except StorageWriteError as exc:
            self._console.warn("Failed to save user context", exc)
            return
        self.info("User context updated", {"userId": record["id"]})

    # ------------------------------------------------------------------
    # Local logs, delivery and lifecycle
    # ------------------------------------------------------------------

    def get_local_logs(self) -> list[LogEntry]:
        return self._local.read_all()

    def clear_local_logs(self) -> None:
        self._local.clear()

    def flush(self):
        """Ship whatever the remote buffer holds now. Returns the delivery future, if any."""
        if self._remote is None:
            return None
        return self._remote.flush(trigger="manual")

    def destroy(self, wait: bool = True) -> None:
        """Detach the global error hooks, stop the flush timer and flush one last time.

        Safe to call more than once.
        """
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True

        self._unregister_hooks()
        if self._remote is not None:
            self._remote.close(wait=wait)

    @property
    def config(self) -> LoggerConfig:
        return self._config

    @property
    def session_id(self) -> str:
        return self._enricher.session_id

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def remote(self) -> RemoteBatchSink | None:
        return self._remote

    @property
    def destroyed(self) -> bool:
        return self._destroyed


def create_logger(
    config: LoggerConfig | None = None,
    *,
    store: DurableStore | None = None,
    transport=None,
    error_source: ErrorSource | None = None,
    host_info: Callable[[], HostInfo] = no_host_info,
    **overrides,
) -> Logger:
    """Build an independently configured Logger.

    Keyword *overrides* are applied on top of *config* (or, when omitted, the
    config loaded from YAML and the environment).
    """
    if config is None:
        config = load_config()
    if overrides:
        config = dataclasses.replace(config, **overrides)
    return Logger(
        config,
        store=store,
        transport=transport,
        error_source=error_source,
        host_info=host_info,
    )


_default_logger: Logger | None = None
_default_lock = threading.Lock()


def get_logger() -> Logger:
    """Return the shared default Logger, creating it on first use."""
    global _default_logger
    with _default_lock:
        if _default_logger is None:
            _default_logger = Logger()
        return _default_logger


def set_default_logger(logger: Logger | None) -> Logger | None:
    """Install *logger* as the shared default; returns the one it replaces."""
    global _default_logger
    with _default_lock:
        previous = _default_logger
        _default_logger = logger
        return previous


async def measure_performance(
    fn,
    label: str,
    context: Optional[Mapping[str, Any]] = None,
    *,
    logger: Logger | None = None,
):
    """Await ``fn()`` and log how long it took.

    Logs INFO on success and ERROR on failure, both with ``duration`` (ms)
    and ``success`` in the context. The result is returned, and any
    exception re-raised, exactly as *fn* produced it.
    """
    target = logger or get_logger()
    start = time.perf_counter()
    try:
        result = fn()
        if inspect.isawaitable(result):
            result = await result
    except Exception as exc:
        duration = round((time.perf_counter() - start) * 1000)
        target.error(
            f"Performance: {label} (failed)",
            {**(context or {}), "duration": duration, "success": False},
            exc,
        )
        raise

    duration = round((time.perf_counter() - start) * 1000)
    target.info(
        f"Performance: {label}",
        {**(context or {}), "duration": duration, "success": True},
    )
    return result


def log_component_error(
    error: BaseException,
    error_info: Optional[Mapping[str, Any]] = None,
    *,
    logger: Logger | None = None,
) -> None:
    """Log an error caught by a UI error boundary, with its component stack."""
    target = logger or get_logger()
    info = error_info or {}
    component_stack = info.get("componentStack", info.get("component_stack"))
    target.error(
        "Component error",
        {
            "message": str(error),
            "stack": ErrorInfo.from_exception(error).stack,
            "componentStack": component_stack,
        },
        error,
    )
