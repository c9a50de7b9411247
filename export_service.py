"""CAD-side half of the bridge: export, anchor-set and map-image import.

Each ``handle_*`` method takes and returns wire dicts and never raises for
expected failures; errors come back as ``{"error": ..., "code": ...}``.
"""

import base64
import binascii
import io
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from cad_document import CadDocument, PlacedPicture
from clipping import ClippingProjector
from config import Settings
from coord_transformer import projected_to_wgs84
from errors import (
    AnchorNotSet,
    ExportFailed,
    InvalidPayload,
    McAtlasError,
    NoSourceGeometry,
)
from geodetic_transform import GeodeticTransform, model_heading_deg
from models import EarthAnchor, MapImageRequest, SyncPayload
from payload_reader import read_anchor_request, read_map_image_request
from payload_writer import build_payload, error_response, success_response

logger = logging.getLogger(__name__)


class ExportService:
    def __init__(self, document: CadDocument, settings: Optional[Settings] = None):
        self.document = document
        self.settings = settings or Settings()

    # -- export -------------------------------------------------------------

    def _transform(self) -> GeodeticTransform:
        anchor = self.document.get_anchor()
        if anchor is None:
            raise AnchorNotSet()
        return GeodeticTransform(anchor)

    def export_geometry(self) -> SyncPayload:
        """Export the source layer and describe where it sits on the globe.

        Raises:
            AnchorNotSet, NoSourceGeometry, ExportFailed
        """
        transform = self._transform()

        layer = self.settings.source_layer
        objects = self.document.objects_on_layer(layer)
        if not objects:
            raise NoSourceGeometry(f"No objects on layer '{layer}'")

        asset_path = self.settings.asset_path
        try:
            asset_path.parent.mkdir(parents=True, exist_ok=True)
            ok = self.document.export_asset(objects, asset_path)
        except OSError as exc:
            raise ExportFailed(f"Export to {asset_path} failed: {exc}") from exc
        if not ok:
            raise ExportFailed("Export command failed")
        if not asset_path.is_file() or asset_path.stat().st_size == 0:
            raise ExportFailed(f"Export produced no file at {asset_path}")

        # The asset is written in model coordinates, so its origin is what gets placed.
        position = transform.to_geodetic((0.0, 0.0, 0.0))

        clip_objects = self.document.objects_on_layer(self.settings.clip_layer)
        loops = ClippingProjector(transform, self.settings.curve_samples).project(clip_objects)

        logger.info("Exported %d object(s) to %s with %d clipping loop(s)",
                    len(objects), asset_path, len(loops))
        return SyncPayload(
            asset_reference=str(asset_path),
            position=position,
            clipping_polygons=loops,
            heading_deg=model_heading_deg(transform.anchor),
        )

    def handle_export(self) -> dict:
        try:
            return build_payload(self.export_geometry())
        except McAtlasError as exc:
            logger.error("Export failed: %s", exc)
            return error_response(exc)

    # -- anchor -------------------------------------------------------------

    def set_earth_anchor(self, lat: float, lon: float, elevation: Optional[float] = None) -> EarthAnchor:
        """Move the anchor to (lat, lon), keeping an existing basis, base point and scale."""
        current = self.document.get_anchor()
        if current is None:
            anchor = EarthAnchor(latitude=lat, longitude=lon,
                                 elevation=elevation or 0.0)
        else:
            anchor = replace(
                current,
                latitude=lat,
                longitude=lon,
                elevation=current.elevation if elevation is None else elevation,
            )
        GeodeticTransform(anchor)   # validates the basis
        self.document.set_anchor(anchor)
        logger.info("Earth anchor set to lat=%.6f lon=%.6f", lat, lon)
        return anchor

    def set_anchor_from_projected(self, eastings: float, northings: float, epsg: int,
                                  elevation: Optional[float] = None) -> EarthAnchor:
        lat, lon = projected_to_wgs84(eastings, northings, epsg)
        return self.set_earth_anchor(lat, lon, elevation)

    def handle_set_anchor(self, data) -> dict:
        try:
            lat, lon = read_anchor_request(data)
            self.set_earth_anchor(lat, lon)
        except McAtlasError as exc:
            return error_response(exc)
        except ValueError as exc:
            return error_response(InvalidPayload(str(exc)))
        return success_response()

    # -- map image ----------------------------------------------------------

    def import_map_image(self, request: MapImageRequest) -> Path:
        """Write the stitched map and place it in the document at ground size.

        The picture is centred on the model point under the image centre
        (or on the anchor base point when the centre is not given).

        Raises:
            InvalidPayload: if the image data is not a decodable image.
            AnchorNotSet
        """
        transform = self._transform()
        try:
            raw = base64.b64decode(request.image_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidPayload(f"imageBase64 is not valid base64: {exc}") from exc
        try:
            with Image.open(io.BytesIO(raw)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError) as exc:
            raise InvalidPayload(f"imageBase64 is not an image: {exc}") from exc

        path = self.settings.map_image_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(raw)

        scale = transform.anchor.unit_scale
        width = request.size_meters / scale
        height = width * request.pixel_height / request.pixel_width
        if request.center_lat is not None and request.center_lon is not None:
            center = transform.to_model(request.center_lat, request.center_lon)
        else:
            center = tuple(transform.anchor.model_base_point)
        self.document.place_picture(PlacedPicture(str(path), width, height, center))
        logger.info("Imported map image %s (%.1f x %.1f model units)", path, width, height)
        return path

    def handle_import_map_image(self, data) -> dict:
        try:
            path = self.import_map_image(read_map_image_request(data))
        except McAtlasError as exc:
            return error_response(exc)
        except OSError as exc:
            return error_response(ExportFailed(f"Could not write map image: {exc}"))
        return success_response(imagePath=str(path))
