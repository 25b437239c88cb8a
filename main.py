"""Server entry point for the applog collector."""

import logging
import signal
import threading

from werkzeug.serving import make_server

from applog.collector import LogStore, create_app
from applog.config import load_collector_config


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)

    config = load_collector_config()
    shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    store = LogStore(max_size=config.max_logs)
    app = create_app(store, auth_token=config.auth_token)
    server = make_server(config.host, config.port, app, threaded=True)
    server_thread = threading.Thread(target=server.serve_forever, daemon=True)

    logger.info("Starting applog collector on %s:%d", config.host, config.port)
    server_thread.start()

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        server.shutdown()
        server_thread.join(timeout=5)
        logger.info(
            "Collector stopped. Received %d batches, %d total entries",
            store.batch_count,
            store.total_count,
        )


if __name__ == "__main__":
    main()
