"""Session identity and per-entry enrichment."""

import json
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from applog.errors import StorageReadError
from applog.models import LogEntry, create_log_entry
from applog.store import DurableStore

CURRENT_USER_KEY = "current_user"
LEGACY_USER_KEY = "user_data"

_BASE36 = string.digits + string.ascii_lowercase


def generate_session_id() -> str:
    """``<epoch millis>-<9 random base36 chars>``."""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"{int(time.time() * 1000)}-{suffix}"


@dataclass(frozen=True)
class HostInfo:
    url: Optional[str] = None
    user_agent: Optional[str] = None


def no_host_info() -> HostInfo:
    return HostInfo()


class ContextEnricher:
    """Stamps entries with the session id, the persisted user id, and host info.

    *host_info* is called once per entry, so it can report the URL of the
    request currently being served.
    """

    def __init__(
        self,
        store: DurableStore,
        session_id: str | None = None,
        host_info: Callable[[], HostInfo] = no_host_info,
        user_keys: tuple[str, ...] = (CURRENT_USER_KEY, LEGACY_USER_KEY),
    ):
        self._store = store
        self._session_id = session_id or generate_session_id()
        self._host_info = host_info
        self._user_keys = user_keys

    @property
    def session_id(self) -> str:
        return self._session_id

    def current_user_id(self) -> str | None:
        """Best-effort read of the persisted identity; never raises."""
        for key in self._user_keys:
            try:
                raw = self._store.get(key)
                if not raw:
                    continue
                user_id = json.loads(raw).get("id")
            except (StorageReadError, ValueError, TypeError, AttributeError):
                continue
            if user_id is not None:
                return str(user_id)
        return None

    def create_entry(
        self,
        level,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
        error=None,
    ) -> LogEntry:
        host = self._host_info()
        return create_log_entry(
            level,
            message,
            session_id=self._session_id,
            context=context,
            error=error,
            user_id=self.current_user_id(),
            url=host.url,
            user_agent=host.user_agent,
        )
