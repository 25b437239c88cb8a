"""Client entry point: emits sample telemetry through an applog Logger."""

import logging
import signal
import threading

from applog.config import load_client_config
from applog.error_capture import ProcessErrorSource
from applog.logger import create_logger, set_default_logger
from applog.simulator import run_simulation
from applog.store import build_store


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)

    config = load_client_config()
    shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    store = build_store(config.logger.storage_dir)
    if config.auth_token:
        store.set(config.logger.auth_token_key, config.auth_token)

    telemetry = create_logger(config.logger, store=store, error_source=ProcessErrorSource())
    set_default_logger(telemetry)
    logger.info(
        "Starting demo client: endpoint=%s, buffer_size=%d, flush_interval=%.1fs, session=%s",
        config.logger.remote_endpoint,
        config.logger.buffer_size,
        config.logger.flush_interval,
        telemetry.session_id,
    )

    try:
        emitted = run_simulation(
            telemetry, config.logs_per_second, config.run_time, shutdown_event
        )
        logger.info("Emitted %d events", emitted)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        telemetry.destroy()
        logger.info("Delivery metrics: %s", telemetry.metrics.snapshot())


if __name__ == "__main__":
    main()
