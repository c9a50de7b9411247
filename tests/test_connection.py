"""Tests for the HTTP bridge client, using a fake requests session."""

import logging

import pytest
import requests

from connection import BridgeConnection, RemoteLogHandler
from errors import AnchorNotSet, McAtlasError, TransportUnavailable
from models import MapImageRequest


class FakeResponse:
    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code

    def json(self):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def _answer(self):
        if self.error is not None:
            raise self.error
        return self.response

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append((method, url, kwargs))
        return self._answer()

    def options(self, url, timeout=None):
        self.calls.append(("OPTIONS", url, {}))
        return self._answer()

    def post(self, url, data=None, timeout=None):
        self.calls.append(("POST", url, {"data": data}))
        return self._answer()


def _conn(**kwargs):
    session = FakeSession(**kwargs)
    return BridgeConnection("http://bridge:8080/", session=session), session


def test_fetch_payload_hits_export_endpoint():
    conn, session = _conn(response=FakeResponse({"glbPath": "a.glb"}))
    assert conn.fetch_payload() == {"glbPath": "a.glb"}
    assert session.calls == [("GET", "http://bridge:8080/export-geometry", {})]


@pytest.mark.parametrize("error", [requests.ConnectionError("refused"), requests.Timeout("slow")])
def test_unreachable_bridge(error):
    conn, _ = _conn(error=error)
    with pytest.raises(TransportUnavailable, match="CAD application"):
        conn.fetch_payload()
    with pytest.raises(TransportUnavailable):
        conn.connect()


def test_error_body_maps_to_error_class():
    conn, _ = _conn(response=FakeResponse({"error": "anchor missing", "code": "AnchorNotSet"}, 500))
    with pytest.raises(AnchorNotSet, match="anchor missing"):
        conn.fetch_payload()


def test_non_json_response():
    conn, _ = _conn(response=FakeResponse(ValueError("not json"), 502))
    with pytest.raises(McAtlasError, match="HTTP 502"):
        conn.fetch_payload()


def test_anchor_and_map_requests_send_json():
    conn, session = _conn(response=FakeResponse({"success": True, "imagePath": "/tmp/m.jpg"}))
    conn.set_earth_anchor(40.5, -74.25)
    result = conn.import_map_image(MapImageRequest("QUJD", 2000.0, 4864, 4864))

    (m1, u1, k1), (m2, u2, k2) = session.calls
    assert (m1, u1) == ("POST", "http://bridge:8080/set-earth-anchor")
    assert k1["json"] == {"lat": 40.5, "lon": -74.25}
    assert u2 == "http://bridge:8080/import-map-image"
    assert k2["json"]["imageBase64"] == "QUJD"
    assert k2["json"]["pixelWidth"] == 4864
    assert result["imagePath"] == "/tmp/m.jpg"


def test_log_failure_is_ignored():
    conn, session = _conn(error=requests.ConnectionError("down"))
    conn.log("hello")
    assert session.calls[0][2]["data"] == b"hello"


def test_remote_log_handler_forwards_records():
    conn, session = _conn(response=FakeResponse({"success": True}))
    logger = logging.getLogger("test_remote_log_handler")
    logger.propagate = False
    logger.setLevel(logging.DEBUG)
    handler = RemoteLogHandler(conn)
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    logger.addHandler(handler)
    try:
        logger.info("placed %s", "tower")
        logger.debug("not forwarded")
    finally:
        logger.removeHandler(handler)

    assert [c[2]["data"] for c in session.calls] == [b"INFO placed tower"]
