"""Projected-CRS conversions using pyproj.

Two uses:
  * set the earth anchor from survey coordinates (eastings, northings) in a
    local projected CRS, converted to WGS84 longitude/latitude;
  * express a stitched tile range in Web-Mercator (EPSG:3857) meters so the
    exported image can carry a world file.

Every transformer is built with always_xy=True, so both uses pass
longitude or easting first and get it back first, whatever axis order
the EPSG definition declares.
"""

from functools import lru_cache
from typing import List, Tuple

from pyproj import Transformer

from models import TileBounds

WGS84_EPSG = 4326
WEB_MERCATOR_EPSG = 3857


@lru_cache(maxsize=16)
def _transformer(src_epsg: int, dst_epsg: int) -> Transformer:
    return Transformer.from_crs(
        f"EPSG:{src_epsg}",
        f"EPSG:{dst_epsg}",
        always_xy=True,
    )


class CoordTransformer:
    """Transformer between two EPSG coordinate reference systems."""

    def __init__(self, src_epsg: int, dst_epsg: int):
        self.src_epsg = src_epsg
        self.dst_epsg = dst_epsg
        self._t = _transformer(src_epsg, dst_epsg)

    def transform(self, x: float, y: float) -> Tuple[float, float]:
        """x = easting or longitude, y = northing or latitude."""
        return self._t.transform(x, y)

    def __repr__(self) -> str:
        return f"CoordTransformer(EPSG:{self.src_epsg} -> EPSG:{self.dst_epsg})"


def projected_to_wgs84(
    eastings: float,
    northings: float,
    src_epsg: int,
) -> Tuple[float, float]:
    """Convert survey coordinates to WGS84 (lat, lon) in decimal degrees.

    Args:
        eastings:  Easting in the projected CRS (metres).
        northings: Northing in the projected CRS (metres).
        src_epsg:  EPSG code of the projected CRS (e.g. 2263 or 3067).
    """
    lon, lat = CoordTransformer(src_epsg, WGS84_EPSG).transform(eastings, northings)
    return lat, lon


def mercator_extent(bounds: TileBounds) -> Tuple[float, float, float, float]:
    """(xmin, ymin, xmax, ymax) of the tile range in EPSG:3857 meters."""
    t = CoordTransformer(WGS84_EPSG, WEB_MERCATOR_EPSG)
    xmin, ymax = t.transform(bounds.west, bounds.north)
    xmax, ymin = t.transform(bounds.east, bounds.south)
    return xmin, ymin, xmax, ymax


def world_file_lines(bounds: TileBounds) -> List[str]:
    """Six-line ESRI world file georeferencing the stitched raster in EPSG:3857."""
    xmin, ymin, xmax, ymax = mercator_extent(bounds)
    px = (xmax - xmin) / bounds.pixel_width
    py = (ymax - ymin) / bounds.pixel_height
    return [
        f"{px:.10f}",
        "0.0",
        "0.0",
        f"{-py:.10f}",
        f"{xmin + px / 2:.6f}",   # centre of the upper-left pixel
        f"{ymax - py / 2:.6f}",
    ]
