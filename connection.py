"""Viewer-side connection to the CAD bridge over HTTP."""

import logging
import threading
from typing import Optional

import requests

from errors import McAtlasError, TransportUnavailable
from models import MapImageRequest
from payload_reader import raise_for_error
from payload_writer import build_anchor_request, build_map_image_request

logger = logging.getLogger(__name__)


class BridgeConnection:
    """Wraps a requests.Session pointed at the CAD bridge."""

    def __init__(self, base_url: str = "http://localhost:8080", timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def connect(self) -> "BridgeConnection":
        """Check that the bridge answers at all.

        Raises:
            TransportUnavailable: if the CAD side cannot be reached.
        """
        try:
            self.session.options(f"{self.base_url}/export-geometry", timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportUnavailable() from exc
        return self

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransportUnavailable() from exc
        except requests.RequestException as exc:
            raise TransportUnavailable(f"Request to {url} failed: {exc}") from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise McAtlasError(
                f"{method} {path} returned HTTP {resp.status_code} without JSON"
            ) from exc
        return raise_for_error(data)

    def fetch_payload(self) -> dict:
        """GET /export-geometry; returns the raw payload dict."""
        return self._request("GET", "/export-geometry")

    def set_earth_anchor(self, lat: float, lon: float) -> dict:
        return self._request("POST", "/set-earth-anchor", json=build_anchor_request(lat, lon))

    def import_map_image(self, request: MapImageRequest) -> dict:
        return self._request("POST", "/import-map-image", json=build_map_image_request(request))

    def log(self, message: str) -> None:
        """Send *message* to the CAD-side log; failures are ignored."""
        try:
            self.session.post(f"{self.base_url}/log", data=message.encode("utf-8"),
                              timeout=self.timeout)
        except requests.RequestException:
            pass


class RemoteLogHandler(logging.Handler):
    """Forward log records to the CAD-side console through the bridge."""

    def __init__(self, connection: BridgeConnection, level: int = logging.INFO):
        super().__init__(level)
        self.connection = connection
        self._local = threading.local()

    def emit(self, record: logging.LogRecord) -> None:
        # requests logs while sending; do not forward those records again
        if getattr(self._local, "busy", False):
            return
        self._local.busy = True
        try:
            self.connection.log(self.format(record))
        except Exception:
            self.handleError(record)
        finally:
            self._local.busy = False
