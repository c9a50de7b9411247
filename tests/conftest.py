"""Shared fixtures: anchors, documents and fake collaborators."""

import sys
from pathlib import Path

import pytest
from PIL import Image

# Add the project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cad_document import CadObject, InMemoryDocument
from cad_geometry import Circle, Extrusion, Polyline
from config import Settings
from errors import TileFetchFailed
from models import EarthAnchor
from tile_stitcher import ImagerySource


# ============== Anchors ==============

@pytest.fixture
def times_square_anchor():
    return EarthAnchor(latitude=40.7580, longitude=-73.9855)


# ============== Documents ==============

def write_glb(objects, path):
    path.write_bytes(b"glTF" + b"\x00" * 16)
    return True


@pytest.fixture
def settings(tmp_path):
    return Settings(export_dir=str(tmp_path / "export"))


@pytest.fixture
def massing_objects():
    square = Polyline([(0, 0), (10, 0), (10, 10), (0, 10)], closed=True)
    return [CadObject("tower", "cesium_massing", Extrusion(square, 30.0))]


@pytest.fixture
def clip_objects():
    return [
        CadObject("site", "clip", Polyline([(-20, -20), (20, -20), (20, 20), (-20, 20), (-20, -20)])),
        CadObject("plaza", "clip", Circle((50, 50, 0), 5.0)),
    ]


@pytest.fixture
def document(times_square_anchor, massing_objects, clip_objects):
    return InMemoryDocument(
        anchor=times_square_anchor,
        objects=massing_objects + clip_objects,
        exporter=write_glb,
    )


# ============== Imagery ==============

def tile_color(tile):
    return ((tile.x * 37) % 256, (tile.y * 53) % 256, 200)


class FakeImagery(ImagerySource):
    """Solid-colour tiles; tiles in *failing* raise TileFetchFailed."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.requested = []

    def fetch_tile(self, tile):
        self.requested.append(tile)
        if (tile.x, tile.y) in self.failing:
            raise TileFetchFailed(f"no tile {tile}")
        return Image.new("RGB", (256, 256), tile_color(tile))


@pytest.fixture
def fake_imagery():
    return FakeImagery()
