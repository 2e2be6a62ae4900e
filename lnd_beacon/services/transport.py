import logging
from typing import Any

import requests

from lnd_beacon.config import DaemonConfig
from lnd_beacon.errors import TransportFailure

logger = logging.getLogger(__name__)


class HttpTransport:
    """Raw request/response against the daemon's REST interface.

    Returns response bodies as bytes; every requests failure (refused,
    timed out, non-2xx) becomes a TransportFailure. Decoding is left to the caller.
    """

    def __init__(self, config: DaemonConfig) -> None:
        self.config = config

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> bytes:
        url = self.config.url_for(path)
        try:
            response = requests.request(
                method,
                url,
                json=payload,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise TransportFailure(f"{method} {path} failed: {exc}", status=status) from exc
        except requests.RequestException as exc:
            raise TransportFailure(f"{method} {path} failed: {exc}") from exc
        return response.content

    def fetch(self, path: str) -> bytes:
        return self._request("GET", path)

    def send(self, path: str, payload: dict[str, Any]) -> bytes:
        return self._request("POST", path, payload)

    def delete(self, path: str) -> bytes:
        return self._request("DELETE", path)
