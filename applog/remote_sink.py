"""Remote batch sink: buffers entries and ships them to the collector in batches.

Two triggers flush the buffer: reaching ``buffer_size`` (initiated inline by
the log call) and a recurring timer every ``flush_interval`` seconds. A flush
snapshots and clears the live buffer under the lock, then hands the snapshot
to a single delivery worker, so log calls never wait on the network. Only
one batch is in flight at a time; entries logged meanwhile wait in the
buffer and the worker sends them as soon as the current batch settles.

A failed batch goes back to the *front* of the buffer, ahead of anything
logged meanwhile. How often that may happen is governed by RetryPolicy:
entries are dropped once they exceed ``max_retries`` failed deliveries, and
after a failure non-forced flushes wait out an exponential backoff.
"""

import logging
import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from applog.console import ConsoleSink
from applog.errors import StorageReadError
from applog.metrics import MetricsCollector
from applog.models import LogEntry, entry_to_dict
from applog.serializer import serialize_batch
from applog.store import DurableStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int | None = 5
    backoff: float = 1.0
    backoff_max: float = 60.0

    def exhausted(self, failed_attempts: int) -> bool:
        """True once an entry has failed more than ``max_retries`` times."""
        return self.max_retries is not None and failed_attempts > self.max_retries

    def delay(self, consecutive_failures: int) -> float:
        """Calculate exponential backoff delay with jitter.

        Base delay doubles with each consecutive failure, capped at
        ``backoff_max``, then multiplied by a random jitter factor between
        0.8 and 1.2. A zero ``backoff`` disables the delay entirely.
        """
        if self.backoff <= 0 or consecutive_failures <= 0:
            return 0.0
        base = self.backoff * (2 ** (consecutive_failures - 1))
        capped = min(base, self.backoff_max)
        jitter = random.uniform(0.8, 1.2)
        return capped * jitter


@dataclass(frozen=True)
class _Pending:
    entry: LogEntry
    failed_attempts: int = 0


class RemoteBatchSink:
    def __init__(
        self,
        endpoint: str | None,
        transport,
        store: DurableStore,
        console: ConsoleSink,
        buffer_size: int = 50,
        flush_interval: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        metrics: MetricsCollector | None = None,
        compress: bool = False,
        auth_token_key: str = "auth_token",
    ):
        self._endpoint = endpoint
        self._transport = transport
        self._store = store
        self._console = console
        self._buffer_size = buffer_size
        self._flush_interval = flush_interval
        self._retry_policy = retry_policy or RetryPolicy()
        self._metrics = metrics or MetricsCollector()
        self._compress = compress
        self._auth_token_key = auth_token_key

        self._buffer: list[_Pending] = []
        self._lock = threading.Lock()
        self._shutdown = threading.Event()
        self._closed = False
        self._consecutive_failures = 0
        self._retry_at = 0.0
        self._in_flight = False
        self._current: Future | None = None

        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="applog-delivery"
        )
        self._timer_thread: threading.Thread | None = None

    # Public API

    def start(self) -> None:
        """Start the recurring flush timer."""
        if self._timer_thread is not None:
            return
        self._timer_thread = threading.Thread(
            target=self._flush_timer, name="applog-flush-timer", daemon=True
        )
        self._timer_thread.start()

    def add(self, entry: LogEntry) -> Future | None:
        """Buffer *entry*; flush inline once the buffer reaches ``buffer_size``.

        Returns the delivery future when this call triggered a flush.
        """
        with self._lock:
            if self._closed:
                return None
            self._buffer.append(_Pending(entry))
            full = len(self._buffer) >= self._buffer_size

        if full:
            return self.flush(trigger="size")
        return None

    def flush(self, trigger: str = "manual", force: bool = False) -> Future | None:
        """Submit everything buffered for delivery.

        At most one batch is in flight. While one is, the buffer keeps
        filling and the delivery worker picks it up once the current batch
        settles, so a failed batch is always retried ahead of newer entries.

        No-op (returns None) when there is no endpoint, the buffer is empty,
        a batch is still in flight, or a retry backoff is pending and *force*
        is False. A forced flush first waits for the batch in flight, and
        delivers on the calling thread when the worker is gone (interpreter
        shutdown). The returned future resolves to True on delivery and
        False on failure.
        """
        if not self._endpoint:
            return None
        if force:
            self._wait_in_flight()

        with self._lock:
            if not self._buffer or self._in_flight:
                return None
            if not force and time.monotonic() < self._retry_at:
                logger.debug(
                    "Deferring %s flush of %d entries during retry backoff",
                    trigger,
                    len(self._buffer),
                )
                return None

            batch = self._take_batch()
            future = self._submit(batch)
            if future is None and not force:
                self._restore(batch)
                return None

        self._metrics.record_flush(trigger)
        if future is None:
            logger.debug("Delivery worker unavailable, sending %d entries inline", len(batch))
            future = Future()
            future.set_result(self._deliver(batch))
        return future

    def close(self, wait: bool = True) -> Future | None:
        """Stop the timer, make one final forced flush, and stop the worker.

        With *wait* the call blocks until the final delivery finishes (bounded
        by the transport timeout). Entries added afterwards are ignored.
        """
        with self._lock:
            if self._closed:
                return None
            self._closed = True

        self._shutdown.set()
        if self._timer_thread is not None:
            self._timer_thread.join(timeout=5)

        future = self.flush(trigger="shutdown", force=True)
        self._executor.shutdown(wait=wait)
        if wait and hasattr(self._transport, "close"):
            self._transport.close()
        return future

    @property
    def pending_count(self) -> int:
        """Number of entries currently waiting in the buffer."""
        with self._lock:
            return len(self._buffer)

    def pending_entries(self) -> list[LogEntry]:
        """Snapshot of the buffered entries in delivery order."""
        with self._lock:
            return [pending.entry for pending in self._buffer]

    @property
    def running(self) -> bool:
        """True while the flush timer thread is alive."""
        return self._timer_thread is not None and self._timer_thread.is_alive()

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    @property
    def flush_interval(self) -> float:
        return self._flush_interval

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    # Internal helpers

    def _flush_timer(self):
        """Background thread that flushes every ``flush_interval`` seconds
        until close() sets the shutdown event."""
        while not self._shutdown.wait(timeout=self._flush_interval):
            self.flush(trigger="timer")

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._compress:
            headers["Content-Encoding"] = "gzip"
        try:
            token = self._store.get(self._auth_token_key)
        except StorageReadError:
            token = None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    # The helpers below expect the caller to hold self._lock.

    def _take_batch(self) -> list[_Pending]:
        batch = self._buffer[:]
        self._buffer.clear()
        self._in_flight = True
        return batch

    def _restore(self, batch: list[_Pending]) -> None:
        self._buffer[:0] = batch
        self._in_flight = False

    def _submit(self, batch: list[_Pending]) -> Future | None:
        try:
            future = self._executor.submit(self._deliver, batch)
        except RuntimeError:
            # Worker pool shut down, possibly by the interpreter exiting.
            return None
        self._current = future
        return future

    def _wait_in_flight(self) -> None:
        while True:
            with self._lock:
                if not self._in_flight:
                    return
                current = self._current
            current.result()

    def _deliver(self, batch: list[_Pending]) -> bool:
        """Send *batch*; after a success, hand the worker the next full batch."""
        delivered = False
        try:
            delivered = self._send(batch)
        finally:
            self._delivery_settled(chain=delivered)
        return delivered

    def _delivery_settled(self, chain: bool) -> None:
        # After a failure the requeued entries wait for the next trigger.
        with self._lock:
            self._in_flight = False
            if not chain or self._closed or len(self._buffer) < self._buffer_size:
                return
            batch = self._take_batch()
            if self._submit(batch) is None:
                self._restore(batch)
                return
        self._metrics.record_flush("size")

    def _send(self, batch: list[_Pending]) -> bool:
        """Requeues the batch on any failure."""
        start = time.monotonic()
        try:
            body = serialize_batch(
                [entry_to_dict(pending.entry) for pending in batch],
                compress=self._compress,
            )
            self._transport.send(self._endpoint, body, self._headers())
        except Exception as exc:
            self._requeue(batch, exc)
            return False

        elapsed_ms = (time.monotonic() - start) * 1000
        with self._lock:
            self._consecutive_failures = 0
            self._retry_at = 0.0
        self._metrics.record_batch(
            batch_size=len(batch), bytes_sent=len(body), send_time_ms=elapsed_ms
        )
        logger.debug("Delivered batch of %d entries in %.1f ms", len(batch), elapsed_ms)
        return True

    def _requeue(self, batch: list[_Pending], exc: Exception) -> None:
        retained: list[_Pending] = []
        dropped = 0
        for pending in batch:
            attempts = pending.failed_attempts + 1
            if self._retry_policy.exhausted(attempts):
                dropped += 1
            else:
                retained.append(_Pending(pending.entry, attempts))

        with self._lock:
            self._buffer[:0] = retained
            self._consecutive_failures += 1
            self._retry_at = time.monotonic() + self._retry_policy.delay(
                self._consecutive_failures
            )

        self._metrics.record_failure(requeued=len(retained), dropped=dropped)
        self._console.warn("Failed to send logs to remote endpoint", exc)
        if dropped:
            self._console.warn(
                f"Dropped {dropped} log entries after "
                f"{self._retry_policy.max_retries + 1} failed delivery attempts"
            )
