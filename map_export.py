"""Export the map under the current view to the CAD side.

Steps: resolve the view centre, set the CAD anchor there, compute tile
bounds for the requested coverage, fetch and stitch the tiles, then send the
encoded image for import. The image may also be kept locally together with
an EPSG:3857 world file.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from config import Settings
from coord_transformer import world_file_lines
from models import GeodeticPoint, MapImageRequest, TileBounds
from tile_math import bounds_center, calculate_tile_bounds
from tile_stitcher import ImagerySource, ProgressFn, encode_image, encode_image_base64, stitch_tiles

logger = logging.getLogger(__name__)


def resolve_view_center(picked: Optional[GeodeticPoint], camera: Optional[GeodeticPoint]) -> GeodeticPoint:
    """Surface point under the screen centre, or the camera position when nothing was picked."""
    if picked is not None:
        return picked
    logger.info("No surface under the view centre; using the camera position")
    return camera


@dataclass
class MapExportResult:
    center: GeodeticPoint
    bounds: TileBounds
    failed_tiles: int
    image_path: str   # path on the CAD side
    local_path: Optional[Path] = None


class MapExporter:
    def __init__(self, connection, imagery: Optional[ImagerySource], settings: Optional[Settings] = None):
        self.connection = connection
        self.imagery = imagery
        self.settings = settings or Settings()

    def export(
        self,
        center: GeodeticPoint,
        size_meters: Optional[float] = None,
        zoom: Optional[int] = None,
        save_to: Optional[Path] = None,
        progress: Optional[ProgressFn] = None,
    ) -> MapExportResult:
        size_meters = size_meters or self.settings.export_size_meters
        zoom = self.settings.tile_zoom if zoom is None else zoom
        logger.info("Map export at lat=%.6f lon=%.6f (%.0f m, z%d)",
                    center.lat, center.lon, size_meters, zoom)

        self.connection.set_earth_anchor(center.lat, center.lon)
        logger.info("Earth anchor set on the CAD side")

        bounds = calculate_tile_bounds(center.lat, center.lon, size_meters, zoom)
        image, failed = stitch_tiles(
            bounds, self.imagery,
            max_workers=self.settings.tile_concurrency,
            progress=progress,
        )

        local_path = None
        if save_to is not None:
            local_path = Path(save_to)
            local_path.parent.mkdir(parents=True, exist_ok=True)
            local_path.write_bytes(encode_image(image, self.settings.jpeg_quality))
            local_path.with_suffix(".jgw").write_text("\n".join(world_file_lines(bounds)) + "\n")
            logger.info("Saved map image to %s", local_path)

        clat, clon = bounds_center(bounds)
        response = self.connection.import_map_image(MapImageRequest(
            image_base64=encode_image_base64(image, self.settings.jpeg_quality),
            size_meters=bounds.actual_size_meters,
            pixel_width=bounds.pixel_width,
            pixel_height=bounds.pixel_height,
            center_lat=clat,
            center_lon=clon,
        ))
        image_path = response.get("imagePath", "")
        logger.info("Map image imported on the CAD side: %s", image_path)
        return MapExportResult(center, bounds, failed, image_path, local_path)
