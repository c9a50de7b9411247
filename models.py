"""Data models for the CAD-to-globe synchronization engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

TILE_SIZE = 256   # pixels per slippy-map tile edge


class HeightReference(Enum):
    """What a GeodeticPoint height is measured from."""
    ANCHOR_RELATIVE = "anchor_relative"   # offset above the sampled ground
    ABSOLUTE = "absolute"                 # meters above the ellipsoid


@dataclass
class EarthAnchor:
    """Ties the model-local frame to a geodetic location.

    model_north and model_east are unit vectors in model space spanning the
    local tangent plane; model_base_point is the model-space point that sits
    at (latitude, longitude). elevation records the surveyed height of that
    point; payload heights are relative to the base point and never include it.
    """
    latitude: float = 0.0    # decimal degrees
    longitude: float = 0.0   # decimal degrees
    elevation: float = 0.0   # meters
    model_base_point: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    model_north: Tuple[float, float, float] = (0.0, 1.0, 0.0)
    model_east: Tuple[float, float, float] = (1.0, 0.0, 0.0)
    unit_scale: float = 1.0  # meters per model unit


@dataclass
class GeodeticPoint:
    lat: float
    lon: float
    height: float = 0.0
    reference: HeightReference = HeightReference.ANCHOR_RELATIVE


@dataclass(frozen=True)
class TileIndex:
    """Integer slippy-map tile address."""
    x: int
    y: int
    zoom: int

    def is_valid(self) -> bool:
        n = 1 << self.zoom if self.zoom >= 0 else 0
        return self.zoom >= 0 and 0 <= self.x < n and 0 <= self.y < n


@dataclass
class TileBounds:
    """Square tile range covering a requested ground area."""
    zoom: int
    start_x: int
    start_y: int
    end_x: int   # inclusive
    end_y: int   # inclusive
    meters_per_pixel: float
    north: float = 0.0
    south: float = 0.0
    west: float = 0.0
    east: float = 0.0
    requested_size_meters: float = 0.0

    @property
    def tiles_x(self) -> int:
        return self.end_x - self.start_x + 1

    @property
    def tiles_y(self) -> int:
        return self.end_y - self.start_y + 1

    @property
    def tile_count(self) -> int:
        return self.tiles_x * self.tiles_y

    @property
    def pixel_width(self) -> int:
        return self.tiles_x * TILE_SIZE

    @property
    def pixel_height(self) -> int:
        return self.tiles_y * TILE_SIZE

    @property
    def actual_size_meters(self) -> float:
        """Ground coverage of the range; never smaller than requested."""
        return self.pixel_width * self.meters_per_pixel

    def tiles(self):
        """Yield every TileIndex in row-major order."""
        for y in range(self.start_y, self.end_y + 1):
            for x in range(self.start_x, self.end_x + 1):
                yield TileIndex(x, y, self.zoom)

    def pixel_offset(self, tile: TileIndex) -> Tuple[int, int]:
        """Top-left pixel of *tile* inside the composited raster."""
        return ((tile.x - self.start_x) * TILE_SIZE,
                (tile.y - self.start_y) * TILE_SIZE)

    def to_dict(self) -> dict:
        return {
            "zoom": self.zoom,
            "startX": self.start_x,
            "startY": self.start_y,
            "endX": self.end_x,
            "endY": self.end_y,
            "pixelWidth": self.pixel_width,
            "pixelHeight": self.pixel_height,
            "metersPerPixel": self.meters_per_pixel,
            "actualSizeMeters": self.actual_size_meters,
            "requestedSizeMeters": self.requested_size_meters,
            "bbox": {
                "north": self.north,
                "south": self.south,
                "west": self.west,
                "east": self.east,
            },
        }


@dataclass
class ClippingLoop:
    """Closed polygon of (lon, lat) vertices, first vertex not repeated."""
    vertices: List[Tuple[float, float]] = field(default_factory=list)

    def flat(self) -> List[float]:
        """[lon1, lat1, lon2, lat2, ...] as carried on the wire."""
        out: List[float] = []
        for lon, lat in self.vertices:
            out.extend((lon, lat))
        return out


@dataclass
class SyncPayload:
    """One export of the CAD model, ready to be placed on the globe."""
    asset_reference: str
    position: GeodeticPoint
    clipping_polygons: List[ClippingLoop] = field(default_factory=list)
    heading_deg: float = 0.0   # compass bearing of model +Y under the anchor
    cycle_id: Optional[int] = None


@dataclass
class Orientation:
    heading_deg: float = 0.0
    pitch_deg: float = 0.0
    roll_deg: float = 0.0


@dataclass
class PlacedAsset:
    """Terrain-resolved, renderer-ready placement of an exported asset."""
    asset_reference: str
    position: GeodeticPoint
    orientation: Orientation = field(default_factory=Orientation)
    cycle_id: Optional[int] = None


@dataclass
class MapImageRequest:
    """Stitched map image sent to the CAD side for import."""
    image_base64: str
    size_meters: float
    pixel_width: int
    pixel_height: int
    center_lat: Optional[float] = None   # geodetic centre of the image
    center_lon: Optional[float] = None
