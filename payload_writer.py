"""Build the JSON objects that cross the CAD <-> viewer boundary.

Shapes:
  sync payload       {"glbPath", "assetReference", "position": {lat, lon, height},
                      "clippingPolygons": [[lon1, lat1, lon2, lat2, ...], ...],
                      "headingDeg", "cycleId"?}
  anchor-set request {"lat", "lon"}
  map-image request  {"imageBase64", "sizeMeters", "pixelWidth", "pixelHeight"}
  success            {"success": true, ...}
  error              {"error": message, "code": error class name}
"""

from typing import Optional

from errors import McAtlasError
from models import MapImageRequest, SyncPayload


def build_payload(payload: SyncPayload) -> dict:
    """Convert a SyncPayload into its wire dict."""
    data = {
        "glbPath": payload.asset_reference,
        "assetReference": payload.asset_reference,
        "position": {
            "lat": payload.position.lat,
            "lon": payload.position.lon,
            "height": payload.position.height,
        },
        "clippingPolygons": [loop.flat() for loop in payload.clipping_polygons],
        "headingDeg": payload.heading_deg,
    }
    if payload.cycle_id is not None:
        data["cycleId"] = payload.cycle_id
    return data


def build_anchor_request(lat: float, lon: float) -> dict:
    return {"lat": lat, "lon": lon}


def build_map_image_request(request: MapImageRequest) -> dict:
    data = {
        "imageBase64": request.image_base64,
        "sizeMeters": request.size_meters,
        "pixelWidth": request.pixel_width,
        "pixelHeight": request.pixel_height,
    }
    if request.center_lat is not None and request.center_lon is not None:
        data["centerLat"] = request.center_lat
        data["centerLon"] = request.center_lon
    return data


def success_response(**fields) -> dict:
    data = {"success": True}
    data.update(fields)
    return data


def error_response(error, code: Optional[str] = None) -> dict:
    """``{"error": message, "code": code}`` from an exception or a message."""
    if isinstance(error, McAtlasError):
        return {"error": str(error), "code": code or error.code}
    return {"error": str(error), "code": code or McAtlasError.__name__}
