"""Minimal CAD geometry used by clip-layer objects.

Every object reduces to a closed curve through ``closed_curve()`` (itself, or
the outer boundary of a surface or extrusion), and every curve reduces to a
polyline through ``to_polyline()``: directly for polylines, by sampling for
anything that can evaluate ``point_at``.
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

Point3 = Tuple[float, float, float]

_EPS = 1e-9


def _as_point(p: Sequence[float]) -> Point3:
    if len(p) == 2:
        return float(p[0]), float(p[1]), 0.0
    return float(p[0]), float(p[1]), float(p[2])


class Geometry:
    def closed_curve(self) -> Optional["Curve"]:
        """The closed planar curve this geometry reduces to, or None."""
        return None


class Curve(Geometry):
    is_closed = False

    def closed_curve(self) -> Optional["Curve"]:
        return self if self.is_closed else None

    def to_polyline(self, samples: int) -> List[Point3]:
        raise NotImplementedError


class Polyline(Curve):
    """Curve given directly by its vertices."""

    def __init__(self, points: Sequence[Sequence[float]], closed: Optional[bool] = None):
        self.points = [_as_point(p) for p in points]
        if closed is None:
            closed = len(self.points) > 2 and np.allclose(self.points[0], self.points[-1])
        self.is_closed = bool(closed)

    def to_polyline(self, samples: int) -> List[Point3]:
        return list(self.points)


class SampleableCurve(Curve):
    """Curve evaluated on a parameter domain [t0, t1]."""

    domain = (0.0, 1.0)

    def point_at(self, t: float) -> Point3:
        raise NotImplementedError

    def to_polyline(self, samples: int) -> List[Point3]:
        t0, t1 = self.domain
        n = max(3, samples)
        # closed curves: the last sample would repeat the first
        count = n if self.is_closed else n + 1
        return [self.point_at(t0 + (t1 - t0) * i / n) for i in range(count)]


class Circle(SampleableCurve):
    is_closed = True
    domain = (0.0, 2.0 * math.pi)

    def __init__(self, center: Sequence[float], radius: float):
        self.center = _as_point(center)
        self.radius = float(radius)

    def point_at(self, t: float) -> Point3:
        cx, cy, cz = self.center
        return cx + self.radius * math.cos(t), cy + self.radius * math.sin(t), cz


class Ellipse(SampleableCurve):
    is_closed = True
    domain = (0.0, 2.0 * math.pi)

    def __init__(self, center: Sequence[float], radius_x: float, radius_y: float,
                 rotation_deg: float = 0.0):
        self.center = _as_point(center)
        self.radius_x = float(radius_x)
        self.radius_y = float(radius_y)
        self.rotation = math.radians(rotation_deg)

    def point_at(self, t: float) -> Point3:
        cx, cy, cz = self.center
        x = self.radius_x * math.cos(t)
        y = self.radius_y * math.sin(t)
        c, s = math.cos(self.rotation), math.sin(self.rotation)
        return cx + x * c - y * s, cy + x * s + y * c, cz


class Arc(SampleableCurve):
    """Open circular arc; never a valid clip boundary on its own."""

    is_closed = False

    def __init__(self, center: Sequence[float], radius: float,
                 start_deg: float, end_deg: float):
        self.center = _as_point(center)
        self.radius = float(radius)
        self.domain = (math.radians(start_deg), math.radians(end_deg))

    def point_at(self, t: float) -> Point3:
        cx, cy, cz = self.center
        return cx + self.radius * math.cos(t), cy + self.radius * math.sin(t), cz


class Surface(Geometry):
    """Planar surface bounded by an outer loop."""

    def __init__(self, outer_boundary: Curve):
        self.outer_boundary = outer_boundary

    def closed_curve(self) -> Optional[Curve]:
        return self.outer_boundary.closed_curve()


class Extrusion(Geometry):
    """Profile swept along the model Z axis; its footprint is the profile."""

    def __init__(self, profile: Curve, height: float):
        self.profile = profile
        self.height = float(height)

    def closed_curve(self) -> Optional[Curve]:
        return self.profile.closed_curve()


def is_planar(points: Sequence[Point3], tolerance: float = 1e-6) -> bool:
    """True if all points lie on one plane (within *tolerance* model units)."""
    pts = np.asarray(points, dtype=float)
    if len(pts) < 4:
        return True
    centered = pts - pts.mean(axis=0)
    # smallest singular value ~ out-of-plane spread
    s = np.linalg.svd(centered, compute_uv=False)
    return s[-1] / math.sqrt(len(pts)) <= tolerance * max(1.0, s[0] / math.sqrt(len(pts)))


def geometry_from_dict(data: dict) -> Geometry:
    """Build geometry from its JSON document form.

    Raises:
        ValueError: for an unknown ``type``.
    """
    kind = data.get("type")
    if kind == "polyline":
        return Polyline(data["points"], data.get("closed"))
    if kind == "circle":
        return Circle(data["center"], data["radius"])
    if kind == "ellipse":
        return Ellipse(data["center"], data["radiusX"], data["radiusY"],
                       data.get("rotation", 0.0))
    if kind == "arc":
        return Arc(data["center"], data["radius"], data["start"], data["end"])
    if kind == "surface":
        return Surface(_curve_from_dict(data["boundary"]))
    if kind == "extrusion":
        return Extrusion(_curve_from_dict(data["profile"]), data.get("height", 0.0))
    raise ValueError(f"Unknown geometry type {kind!r}")


def _curve_from_dict(data: dict) -> Curve:
    geom = geometry_from_dict(data)
    if not isinstance(geom, Curve):
        raise ValueError(f"Expected a curve, got {data.get('type')!r}")
    return geom
