"""Terrain elevation sampling.

A failing or missing elevation source never aborts placement: the sample
degrades to 0 m and the failure is logged.
"""

import logging
from typing import Optional

import requests

from errors import TerrainUnavailable

logger = logging.getLogger(__name__)


class TerrainSource:
    """Returns ground height (meters above the ellipsoid) at a location."""

    def sample_height(self, lat: float, lon: float) -> float:
        raise NotImplementedError


class ConstantTerrain(TerrainSource):
    def __init__(self, height: float = 0.0):
        self.height = height

    def sample_height(self, lat: float, lon: float) -> float:
        return self.height


class HttpTerrainSource(TerrainSource):
    """Elevation service answering ``GET url`` with JSON.

    The URL template receives ``{lat}`` and ``{lon}``. Accepted responses are
    ``{"elevation": h}``, ``{"height": h}`` or the Open-Elevation shape
    ``{"results": [{"elevation": h}]}``.
    """

    def __init__(self, url_template: str, session: Optional[requests.Session] = None,
                 timeout: float = 10.0):
        self.url_template = url_template
        self.session = session or requests.Session()
        self.timeout = timeout

    def sample_height(self, lat: float, lon: float) -> float:
        url = self.url_template.format(lat=lat, lon=lon)
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise TerrainUnavailable(f"Elevation request failed: {exc}") from exc
        return _parse_height(data)


def _parse_height(data) -> float:
    if isinstance(data, dict):
        for key in ("elevation", "height"):
            if key in data:
                return float(data[key])
        results = data.get("results")
        if results:
            return _parse_height(results[0])
    raise TerrainUnavailable(f"Unrecognised elevation response: {data!r}")


def sample_or_zero(source: Optional[TerrainSource], lat: float, lon: float) -> float:
    """Ground height at (lat, lon), or 0.0 if the source is missing or fails."""
    if source is None:
        logger.warning("No terrain source; placing on height 0")
        return 0.0
    try:
        return float(source.sample_height(lat, lon))
    except Exception as exc:
        logger.warning("Terrain sample at %.6f, %.6f failed (%s); using 0", lat, lon, exc)
        return 0.0
