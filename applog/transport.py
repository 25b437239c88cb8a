"""HTTP transport: POSTs serialized batches to the collector endpoint."""

import logging

import requests

from applog.errors import RemoteDeliveryError

logger = logging.getLogger(__name__)


class HttpTransport:
    """Thin wrapper over a requests.Session.

    Any non-2xx status or network failure is raised as RemoteDeliveryError.
    """

    def __init__(self, timeout: float = 10.0, session: requests.Session | None = None):
        self._timeout = timeout
        self._session = session or requests.Session()

    def send(self, url: str, body: bytes, headers: dict[str, str]) -> int:
        """POST *body* to *url*. Returns the status code on success."""
        try:
            response = self._session.post(
                url, data=body, headers=headers, timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise RemoteDeliveryError(f"POST {url} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise RemoteDeliveryError(
                f"POST {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug("Delivered %d bytes to %s (HTTP %d)", len(body), url, response.status_code)
        return response.status_code

    def close(self):
        """Close the underlying HTTP session."""
        self._session.close()
