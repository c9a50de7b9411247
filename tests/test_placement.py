"""Tests for terrain-aware placement and heading correction."""

import pytest
import requests

from cad_document import InMemoryDocument
from errors import TerrainUnavailable
from export_service import ExportService
from models import EarthAnchor, GeodeticPoint, HeightReference, SyncPayload
from payload_reader import read_payload
from placement import PlacementResolver
from terrain import ConstantTerrain, HttpTerrainSource, TerrainSource, sample_or_zero

from conftest import write_glb


class FailingTerrain(TerrainSource):
    def sample_height(self, lat, lon):
        raise TerrainUnavailable("terrain offline")


def _payload(height=0.0, heading=0.0):
    return SyncPayload("model.glb", GeodeticPoint(40.7, -74.0, height), heading_deg=heading)


def test_height_is_terrain_plus_offset():
    placed = PlacementResolver(ConstantTerrain(12.5)).resolve(_payload(height=3.0))
    assert placed.position.height == pytest.approx(15.5)
    assert placed.position.reference is HeightReference.ABSOLUTE
    assert (placed.position.lat, placed.position.lon) == (40.7, -74.0)


@pytest.mark.parametrize("terrain", [None, FailingTerrain()])
def test_terrain_failure_degrades_to_zero(terrain):
    placed = PlacementResolver(terrain).resolve(_payload(height=4.0))
    assert placed.position.height == pytest.approx(4.0)


def test_default_heading_correction():
    o = PlacementResolver().resolve(_payload()).orientation
    assert (o.heading_deg, o.pitch_deg, o.roll_deg) == (90.0, 0.0, 0.0)


def test_heading_correction_is_configurable():
    resolver = PlacementResolver(heading_correction_deg=-90.0, pitch_deg=1.0)
    o = resolver.resolve(_payload(heading=45.0)).orientation
    assert o.heading_deg == pytest.approx(315.0)
    assert o.pitch_deg == 1.0


def test_already_absolute_position_is_refused():
    point = GeodeticPoint(1.0, 2.0, 3.0, HeightReference.ABSOLUTE)
    with pytest.raises(ValueError):
        PlacementResolver().resolve_position(point)


def test_cycle_id_carried_through():
    payload = _payload()
    payload.cycle_id = 7
    assert PlacementResolver().resolve(payload).cycle_id == 7


# ============== HTTP terrain ==============

class _Response:
    def __init__(self, data=None, status=200):
        self._data = data
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        if self._data is None:
            raise ValueError("no JSON")
        return self._data


class _Session:
    def __init__(self, response):
        self.response = response
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.mark.parametrize("data", [
    {"elevation": 9.5},
    {"height": 9.5},
    {"results": [{"latitude": 1, "longitude": 2, "elevation": 9.5}]},
])
def test_http_terrain_shapes(data):
    session = _Session(_Response(data))
    source = HttpTerrainSource("https://dem.example/?lat={lat}&lon={lon}", session=session)
    assert source.sample_height(1.0, 2.0) == 9.5
    assert session.urls == ["https://dem.example/?lat=1.0&lon=2.0"]


@pytest.mark.parametrize("response", [
    _Response(status=503),
    _Response(None),
    _Response({"unexpected": True}),
    requests.ConnectionError("down"),
])
def test_http_terrain_failures(response):
    source = HttpTerrainSource("https://dem.example/{lat}/{lon}", session=_Session(response))
    with pytest.raises(TerrainUnavailable):
        source.sample_height(1.0, 2.0)
    assert sample_or_zero(source, 1.0, 2.0) == 0.0


def test_anchor_elevation_not_added_on_top_of_terrain(massing_objects, settings):
    anchor = EarthAnchor(latitude=40.7580, longitude=-73.9855, elevation=30.0)
    service = ExportService(InMemoryDocument(anchor, massing_objects, write_glb), settings)
    payload = read_payload(service.handle_export())
    assert payload.position.height == pytest.approx(0.0)

    placed = PlacementResolver(ConstantTerrain(30.0)).resolve(payload)
    assert placed.position.height == pytest.approx(30.0)
