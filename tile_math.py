"""Web-Mercator slippy-map tile math.

Tiles are 256 px squares addressed by (x, y, zoom) with y growing southward.
"""

import logging
import math
from typing import Tuple

from models import TILE_SIZE, TileBounds, TileIndex

logger = logging.getLogger(__name__)

# Equatorial ground resolution of zoom 0 for 256 px tiles, meters per pixel.
EQUATOR_METERS_PER_PIXEL = 156543.03392

MAX_LATITUDE = 85.0511287798   # Web-Mercator cut-off


def lat_lon_to_tile(lat: float, lon: float, zoom: int) -> TileIndex:
    """Tile containing (lat, lon) at *zoom*."""
    n = 1 << zoom
    lat_rad = math.radians(max(-MAX_LATITUDE, min(MAX_LATITUDE, lat)))
    x = math.floor((lon + 180.0) / 360.0 * n)
    y = math.floor(
        (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * n
    )
    # lon = 180 or lat at the cut-off land exactly on n
    return TileIndex(min(max(x, 0), n - 1), min(max(y, 0), n - 1), zoom)


def tile_to_lat_lon(x: float, y: float, zoom: int) -> Tuple[float, float]:
    """(lat, lon) of the top-left corner of tile (x, y); fractional indices allowed."""
    n = 1 << zoom
    lon = x / n * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / n))))
    return lat, lon


def meters_per_pixel(lat: float, zoom: int) -> float:
    return EQUATOR_METERS_PER_PIXEL * math.cos(math.radians(lat)) / (1 << zoom)


def calculate_tile_bounds(
    center_lat: float,
    center_lon: float,
    size_meters: float,
    zoom: int,
) -> TileBounds:
    """Square tile range centred on the centre tile, covering at least *size_meters*.

    The covered size is quantized up to whole tiles and reported as-is in
    ``TileBounds.actual_size_meters``. A request smaller than one tile still
    yields a 1x1 range.
    """
    if size_meters <= 0:
        raise ValueError(f"size_meters must be positive, got {size_meters}")
    if zoom < 0:
        raise ValueError(f"zoom must be >= 0, got {zoom}")

    mpp = meters_per_pixel(center_lat, zoom)
    pixels_needed = size_meters / mpp
    tiles_needed = max(1, math.ceil(pixels_needed / TILE_SIZE))
    half = tiles_needed // 2

    center = lat_lon_to_tile(center_lat, center_lon, zoom)
    start_x, end_x = center.x - half, center.x + half
    start_y, end_y = center.y - half, center.y + half

    north, west = tile_to_lat_lon(start_x, start_y, zoom)
    south, east = tile_to_lat_lon(end_x + 1, end_y + 1, zoom)

    bounds = TileBounds(
        zoom=zoom,
        start_x=start_x,
        start_y=start_y,
        end_x=end_x,
        end_y=end_y,
        meters_per_pixel=mpp,
        north=north,
        south=south,
        west=west,
        east=east,
        requested_size_meters=size_meters,
    )
    logger.info(
        "Tile bounds z%d x=%d..%d y=%d..%d (%d tiles, %dx%d px, %.1f m requested, %.1f m covered)",
        zoom, start_x, end_x, start_y, end_y, bounds.tile_count,
        bounds.pixel_width, bounds.pixel_height, size_meters, bounds.actual_size_meters,
    )
    return bounds


def bounds_center(bounds: TileBounds) -> Tuple[float, float]:
    """(lat, lon) under the centre pixel of the stitched raster."""
    cx = (bounds.start_x + bounds.end_x + 1) / 2.0
    cy = (bounds.start_y + bounds.end_y + 1) / 2.0
    return tile_to_lat_lon(cx, cy, bounds.zoom)
