"""Global error capture behind an injectable ErrorSource.

An ErrorSource delivers host-level events to one observer:

* ``error``              an uncaught exception (main thread or worker thread)
* ``unhandledrejection`` an exception nobody retrieved from an asyncio task
* ``beforeunload``       the process is shutting down

``register`` returns a callable that detaches the observer again.
"""

import asyncio
import atexit
import logging
import sys
import threading
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

ERROR = "error"
UNHANDLED_REJECTION = "unhandledrejection"
BEFORE_UNLOAD = "beforeunload"


@dataclass(frozen=True)
class HostEvent:
    kind: str
    message: Optional[str] = None
    filename: Optional[str] = None
    lineno: Optional[int] = None
    colno: Optional[int] = None
    error: Optional[BaseException] = None
    reason: Any = None
    task: Any = None

    @classmethod
    def from_exception(cls, exc: BaseException, tb=None) -> "HostEvent":
        """Build an ``error`` event locating the innermost frame of *tb*."""
        tb = tb if tb is not None else exc.__traceback__
        filename = lineno = colno = None
        frames = traceback.extract_tb(tb) if tb is not None else []
        if frames:
            last = frames[-1]
            filename = last.filename
            lineno = last.lineno
            colno = getattr(last, "colno", None)
        return cls(
            kind=ERROR,
            message=f"{type(exc).__name__}: {exc}",
            filename=filename,
            lineno=lineno,
            colno=colno,
            error=exc,
        )


Observer = Callable[[HostEvent], None]


class ErrorSource(ABC):
    @abstractmethod
    def register(self, observer: Observer) -> Callable[[], None]:
        """Start delivering host events to *observer*; return the unregister hook."""


class NullErrorSource(ErrorSource):
    """For hosts with no global error hooks: never emits anything."""

    def register(self, observer: Observer) -> Callable[[], None]:
        return lambda: None


class ProcessErrorSource(ErrorSource):
    """Chains ``sys.excepthook``, ``threading.excepthook``, ``atexit`` and,
    when a *loop* is given, the asyncio loop's exception handler.

    Previously installed hooks keep running after the observer.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def register(self, observer: Observer) -> Callable[[], None]:
        def notify(event: HostEvent):
            try:
                observer(event)
            except Exception:
                logger.exception("Error observer failed for %s event", event.kind)

        previous_sys_hook = sys.excepthook
        previous_thread_hook = threading.excepthook

        def sys_hook(exc_type, exc, tb):
            notify(HostEvent.from_exception(exc, tb))
            previous_sys_hook(exc_type, exc, tb)

        def thread_hook(args):
            if args.exc_value is not None:
                notify(HostEvent.from_exception(args.exc_value, args.exc_traceback))
            previous_thread_hook(args)

        def on_exit():
            notify(HostEvent(kind=BEFORE_UNLOAD))

        sys.excepthook = sys_hook
        threading.excepthook = thread_hook
        atexit.register(on_exit)

        loop = self._loop
        previous_loop_handler = loop_handler = None
        if loop is not None:
            previous_loop_handler = loop.get_exception_handler()

            def loop_handler(the_loop, context):
                exc = context.get("exception")
                notify(
                    HostEvent(
                        kind=UNHANDLED_REJECTION,
                        message=context.get("message"),
                        error=exc,
                        reason=exc if exc is not None else context.get("message"),
                        task=context.get("task") or context.get("future"),
                    )
                )
                if previous_loop_handler is not None:
                    previous_loop_handler(the_loop, context)
                else:
                    the_loop.default_exception_handler(context)

            loop.set_exception_handler(loop_handler)

        def unregister():
            # Only restore hooks that are still ours.
            if sys.excepthook is sys_hook:
                sys.excepthook = previous_sys_hook
            if threading.excepthook is thread_hook:
                threading.excepthook = previous_thread_hook
            atexit.unregister(on_exit)
            if loop_handler is not None and loop.get_exception_handler() is loop_handler:
                loop.set_exception_handler(previous_loop_handler)

        return unregister
