"""Affine mapping between model-local coordinates and latitude/longitude/height.

The model frame is projected onto the anchor's local tangent plane using the
anchor's model_north / model_east vectors as the plane's Y / X basis. Planar
offsets (in meters) become degrees with the spherical small-area scale:

    meters per degree of latitude  = 111320
    meters per degree of longitude = 111320 * cos(anchor latitude)

This is an approximation valid around the anchor; the inverse is used to
place the anchor itself, not for general round-tripping.
"""

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from errors import AnchorNotSet
from models import EarthAnchor, GeodeticPoint, HeightReference

METERS_PER_DEGREE_LAT = 111320.0

_BASIS_TOLERANCE = 1e-6


def meters_per_degree_lon(latitude: float) -> float:
    return METERS_PER_DEGREE_LAT * math.cos(math.radians(latitude))


def normalized_basis(
    north: Sequence[float],
    east: Sequence[float],
) -> Tuple[Tuple[float, float, float], Tuple[float, float, float]]:
    """Return (north, east) as unit vectors with east made perpendicular to north.

    Raises:
        ValueError: if either vector is zero or the two are parallel.
    """
    n = np.asarray(north, dtype=float)
    e = np.asarray(east, dtype=float)
    n_len = np.linalg.norm(n)
    if n_len < _BASIS_TOLERANCE:
        raise ValueError("model north must be a non-zero vector")
    n = n / n_len
    e = e - np.dot(e, n) * n   # Gram-Schmidt
    e_len = np.linalg.norm(e)
    if e_len < _BASIS_TOLERANCE:
        raise ValueError("model east must not be parallel to model north")
    e = e / e_len
    return tuple(float(v) for v in n), tuple(float(v) for v in e)


def check_anchor(anchor: EarthAnchor) -> None:
    """Raise ValueError unless the anchor basis is orthonormal and the scale positive."""
    n = np.asarray(anchor.model_north, dtype=float)
    e = np.asarray(anchor.model_east, dtype=float)
    if abs(np.linalg.norm(n) - 1.0) > _BASIS_TOLERANCE:
        raise ValueError("model north must be a unit vector")
    if abs(np.linalg.norm(e) - 1.0) > _BASIS_TOLERANCE:
        raise ValueError("model east must be a unit vector")
    if abs(np.dot(n, e)) > _BASIS_TOLERANCE:
        raise ValueError("model north and model east must be perpendicular")
    if anchor.unit_scale <= 0:
        raise ValueError("unit scale must be positive")


def model_heading_deg(anchor: EarthAnchor) -> float:
    """Compass bearing of the model +Y axis under this anchor (0 = north, 90 = east)."""
    north_y = anchor.model_north[1]
    east_y = anchor.model_east[1]
    return math.degrees(math.atan2(east_y, north_y))


class GeodeticTransform:
    """Forward (model -> geodetic) and anchor-setting inverse for one EarthAnchor."""

    def __init__(self, anchor: Optional[EarthAnchor]):
        if anchor is None:
            raise AnchorNotSet()
        check_anchor(anchor)
        self.anchor = anchor
        self._base = np.asarray(anchor.model_base_point, dtype=float)
        self._north = np.asarray(anchor.model_north, dtype=float)
        self._east = np.asarray(anchor.model_east, dtype=float)
        self._up = np.cross(self._east, self._north)
        self._m_per_deg_lon = meters_per_degree_lon(anchor.latitude)

    def local_offsets(self, point: Sequence[float]) -> Tuple[float, float, float]:
        """(east, north, up) offset of a model point from the base point, in meters."""
        d = (np.asarray(point, dtype=float) - self._base) * self.anchor.unit_scale
        return (float(np.dot(d, self._east)),
                float(np.dot(d, self._north)),
                float(np.dot(d, self._up)))

    def to_geodetic(self, point: Sequence[float]) -> GeodeticPoint:
        """Model point -> GeodeticPoint; height is the offset above the base point.

        The anchor elevation is not added: the renderer resolves the ground
        height under (lat, lon) itself.
        """
        east_m, north_m, up_m = self.local_offsets(point)
        return GeodeticPoint(
            lat=self.anchor.latitude + north_m / METERS_PER_DEGREE_LAT,
            lon=self.anchor.longitude + east_m / self._m_per_deg_lon,
            height=up_m,
            reference=HeightReference.ANCHOR_RELATIVE,
        )

    def to_lon_lat(self, point: Sequence[float]) -> Tuple[float, float]:
        g = self.to_geodetic(point)
        return g.lon, g.lat

    def to_model(self, lat: float, lon: float, height: Optional[float] = None) -> Tuple[float, float, float]:
        """Geodetic location (height above the base point) -> model point."""
        north_m = (lat - self.anchor.latitude) * METERS_PER_DEGREE_LAT
        east_m = (lon - self.anchor.longitude) * self._m_per_deg_lon
        up_m = 0.0 if height is None else height
        offset = self._north * north_m + self._east * east_m + self._up * up_m
        p = self._base + offset / self.anchor.unit_scale
        return float(p[0]), float(p[1]), float(p[2])
