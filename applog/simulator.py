"""Sample telemetry generator used by the demo client."""

import random
import threading
import time

SAMPLE_PAGES = ["/", "/dashboard", "/articles", "/articles/new", "/revenue", "/settings"]
SAMPLE_ACTIONS = ["button_click", "form_submit", "search", "filter_change", "logout"]
SAMPLE_APIS = [
    ("GET", "/api/v1/dashboard/stats"),
    ("GET", "/api/v1/dashboard/articles"),
    ("GET", "/api/v1/trending-topics"),
    ("POST", "/api/v1/articles"),
]
SAMPLE_STATUSES = [200, 200, 200, 201, 204, 304, 400, 404, 500]


def emit_sample_event(logger, rng: random.Random) -> str:
    """Emit one random event through *logger*; returns its kind."""
    kind = rng.choice(["page_view", "user_action", "api_call", "api_call", "debug", "warn"])
    if kind == "page_view":
        logger.page_view(rng.choice(SAMPLE_PAGES), {"referrer": rng.choice(SAMPLE_PAGES)})
    elif kind == "user_action":
        logger.user_action(rng.choice(SAMPLE_ACTIONS), {"component": "demo"})
    elif kind == "api_call":
        method, url = rng.choice(SAMPLE_APIS)
        logger.api_call(method, url, rng.choice(SAMPLE_STATUSES), rng.randint(5, 900))
    elif kind == "debug":
        logger.debug("Cache lookup", {"hit": rng.random() < 0.7})
    else:
        logger.warn("Slow render detected", {"duration": rng.randint(100, 2000)})
    return kind


def run_simulation(
    logger,
    logs_per_second: int,
    run_time: int,
    shutdown_event: threading.Event,
    rng: random.Random | None = None,
) -> int:
    """Emit *logs_per_second* events for *run_time* seconds. Returns the count."""
    rng = rng or random.Random()
    emitted = 0
    for _ in range(run_time):
        if shutdown_event.is_set():
            break

        second_start = time.monotonic()

        for _ in range(logs_per_second):
            if shutdown_event.is_set():
                break
            emit_sample_event(logger, rng)
            emitted += 1

        # Sleep until the next second boundary
        remaining = 1.0 - (time.monotonic() - second_start)
        if remaining > 0 and not shutdown_event.is_set():
            shutdown_event.wait(timeout=remaining)

    return emitted
