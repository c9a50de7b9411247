"""Project closed planar clip-layer curves into geodetic (lon, lat) loops.

Objects that are open, non-planar, degenerate or not reducible to a closed
curve are skipped with a warning; they never abort the projection.
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np

from cad_document import CadObject
from cad_geometry import Point3, is_planar
from errors import DegenerateCurve
from geodetic_transform import GeodeticTransform
from models import ClippingLoop

logger = logging.getLogger(__name__)

DEFAULT_SAMPLES = 64
MIN_LOOP_VERTICES = 3
MIN_AREA_M2 = 1e-6


def _dedupe(points: Sequence[Point3]) -> List[Point3]:
    """Drop consecutive repeats and the closing duplicate of the first vertex."""
    out: List[Point3] = []
    for p in points:
        if out and np.allclose(out[-1], p):
            continue
        out.append(p)
    if len(out) > 1 and np.allclose(out[0], out[-1]):
        out.pop()
    return out


def polygon_area(xy: Sequence[Tuple[float, float]]) -> float:
    """Signed shoelace area of a closed 2D ring given without the closing vertex."""
    if len(xy) < 3:
        return 0.0
    a = np.asarray(xy, dtype=float)
    x, y = a[:, 0], a[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


class ClippingProjector:
    def __init__(self, transform: GeodeticTransform, samples: int = DEFAULT_SAMPLES):
        self.transform = transform
        self.samples = max(MIN_LOOP_VERTICES, samples)

    def project_object(self, obj: CadObject) -> ClippingLoop:
        """Reduce one object to a ClippingLoop.

        Raises:
            DegenerateCurve: if the object cannot yield a loop enclosing area.
        """
        if obj.geometry is None:
            raise DegenerateCurve(f"object {obj.id} has no geometry")
        curve = obj.geometry.closed_curve()
        if curve is None:
            raise DegenerateCurve(f"object {obj.id} is not a closed curve")

        points = _dedupe(curve.to_polyline(self.samples))
        if len(points) < MIN_LOOP_VERTICES:
            raise DegenerateCurve(f"object {obj.id} reduces to {len(points)} vertices")
        if not is_planar(points):
            raise DegenerateCurve(f"object {obj.id} is not planar")

        local = [self.transform.local_offsets(p)[:2] for p in points]   # (east, north)
        if abs(polygon_area(local)) < MIN_AREA_M2:
            raise DegenerateCurve(f"object {obj.id} encloses no area")

        vertices = [self.transform.to_lon_lat(p) for p in points]
        return ClippingLoop(vertices=vertices)

    def project(self, objects: Sequence[CadObject]) -> List[ClippingLoop]:
        loops: List[ClippingLoop] = []
        for obj in objects:
            try:
                loops.append(self.project_object(obj))
            except DegenerateCurve as exc:
                logger.warning("Skipping clip object: %s", exc)
        logger.info("Projected %d clipping loop(s) from %d object(s)", len(loops), len(objects))
        return loops
