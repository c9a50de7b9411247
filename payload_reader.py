"""Parse and validate JSON objects received across the CAD <-> viewer boundary.

Malformed input raises InvalidPayload. A response carrying ``"error"`` is
turned back into the McAtlasError subclass named by its ``"code"``.
"""

import logging
import math
from typing import List, Tuple

from errors import InvalidPayload, error_from_code
from models import ClippingLoop, GeodeticPoint, HeightReference, MapImageRequest, SyncPayload

logger = logging.getLogger(__name__)


def _number(data: dict, key: str, where: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidPayload(f"{where}: '{key}' must be a finite number, got {value!r}")
    return float(value)


def _require_object(data, where: str) -> dict:
    if not isinstance(data, dict):
        raise InvalidPayload(f"{where}: expected a JSON object, got {type(data).__name__}")
    return data


def raise_for_error(data) -> dict:
    """Return *data* unless it is an error response, which is raised instead."""
    data = _require_object(data, "response")
    if "error" in data:
        raise error_from_code(data.get("code"), str(data["error"]))
    return data


def read_clipping_polygons(raw) -> List[ClippingLoop]:
    """Flat [lon, lat, ...] lists -> ClippingLoops; loops under 3 vertices are dropped."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidPayload("clippingPolygons must be a list")
    loops = []
    for i, flat in enumerate(raw):
        if not isinstance(flat, list) or len(flat) % 2:
            raise InvalidPayload(f"clippingPolygons[{i}] must be a flat list of lon, lat pairs")
        if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in flat):
            raise InvalidPayload(f"clippingPolygons[{i}] must contain only numbers")
        vertices: List[Tuple[float, float]] = [
            (float(flat[j]), float(flat[j + 1])) for j in range(0, len(flat), 2)
        ]
        if len(vertices) > 1 and vertices[0] == vertices[-1]:
            vertices.pop()
        if len(vertices) < 3:
            logger.warning("Dropping clipping polygon %d with %d vertices", i, len(vertices))
            continue
        loops.append(ClippingLoop(vertices=vertices))
    return loops


def read_payload(data) -> SyncPayload:
    """Parse a sync payload (or raise the error it carries)."""
    data = raise_for_error(data)
    asset = data.get("assetReference") or data.get("glbPath")
    if not isinstance(asset, str) or not asset:
        raise InvalidPayload("payload has no glbPath / assetReference")
    pos = _require_object(data.get("position"), "position")
    position = GeodeticPoint(
        lat=_number(pos, "lat", "position"),
        lon=_number(pos, "lon", "position"),
        height=_number(pos, "height", "position") if "height" in pos else 0.0,
        reference=HeightReference.ANCHOR_RELATIVE,
    )
    heading = _number(data, "headingDeg", "payload") if "headingDeg" in data else 0.0
    cycle_id = data.get("cycleId")
    return SyncPayload(
        asset_reference=asset,
        position=position,
        clipping_polygons=read_clipping_polygons(data.get("clippingPolygons")),
        heading_deg=heading,
        cycle_id=cycle_id if isinstance(cycle_id, int) else None,
    )


def read_anchor_request(data) -> Tuple[float, float]:
    """Return (lat, lon) from an anchor-set request."""
    data = _require_object(data, "anchor request")
    lat = _number(data, "lat", "anchor request")
    lon = _number(data, "lon", "anchor request")
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise InvalidPayload(f"anchor request: ({lat}, {lon}) is not a valid lat/lon")
    return lat, lon


def read_map_image_request(data) -> MapImageRequest:
    data = _require_object(data, "map image request")
    image = data.get("imageBase64")
    if not isinstance(image, str) or not image:
        raise InvalidPayload("map image request: 'imageBase64' must be a non-empty string")
    size = _number(data, "sizeMeters", "map image request")
    width = _number(data, "pixelWidth", "map image request")
    height = _number(data, "pixelHeight", "map image request")
    if size <= 0 or width < 1 or height < 1:
        raise InvalidPayload("map image request: sizes must be positive")
    center_lat = center_lon = None
    if "centerLat" in data and "centerLon" in data:
        center_lat = _number(data, "centerLat", "map image request")
        center_lon = _number(data, "centerLon", "map image request")
    return MapImageRequest(
        image_base64=image,
        size_meters=size,
        pixel_width=int(width),
        pixel_height=int(height),
        center_lat=center_lat,
        center_lon=center_lon,
    )
