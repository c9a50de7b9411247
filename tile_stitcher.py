"""Fetch slippy-map tiles over a TileBounds range and composite them into one raster.

Fetching may run with bounded concurrency; compositing always happens after
all fetches, in row-major order, at each tile's exact grid offset, so the
output does not depend on completion order. A tile that fails to fetch
leaves its region blank and is logged; only an imagery source that cannot
be obtained at all aborts the operation.
"""

import base64
import concurrent.futures
import io
import logging
from typing import Callable, Dict, Optional, Tuple

import requests
from PIL import Image
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import ImagerySourceUnavailable, TileFetchFailed
from models import TILE_SIZE, TileBounds, TileIndex

logger = logging.getLogger(__name__)

ProgressFn = Callable[[int, int], None]

BLANK_RGB = (0, 0, 0)
DEFAULT_JPEG_QUALITY = 92


class ImagerySource:
    """Anything that returns a raster for a TileIndex."""

    def fetch_tile(self, tile: TileIndex) -> Image.Image:
        raise NotImplementedError


class XyzImagerySource(ImagerySource):
    """HTTP tile server addressed by a ``{z}/{x}/{y}`` URL template."""

    def __init__(
        self,
        url_template: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        retries: int = 2,
        user_agent: str = "McAtlas/0.1",
    ):
        missing = [k for k in ("{x}", "{y}", "{z}") if k not in url_template]
        if missing:
            raise ImagerySourceUnavailable(
                f"Tile URL template {url_template!r} is missing {', '.join(missing)}"
            )
        self.url_template = url_template
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            retry = Retry(
                total=retries,
                backoff_factor=0.3,
                status_forcelist=(429, 500, 502, 503, 504),
                allowed_methods=("GET",),
            )
            adapter = HTTPAdapter(max_retries=retry)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
            session.headers["User-Agent"] = user_agent
        self.session = session

    def tile_url(self, tile: TileIndex) -> str:
        return self.url_template.format(x=tile.x, y=tile.y, z=tile.zoom)

    def fetch_tile(self, tile: TileIndex) -> Image.Image:
        url = self.tile_url(tile)
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
            img = Image.open(io.BytesIO(resp.content))
            img.load()
        except (requests.RequestException, OSError) as exc:
            raise TileFetchFailed(f"{url}: {exc}") from exc
        return img


def _fetch_one(source: ImagerySource, tile: TileIndex) -> Optional[Image.Image]:
    if not tile.is_valid():
        logger.warning("Tile %s is outside the tile grid; leaving blank", tile)
        return None
    try:
        img = source.fetch_tile(tile)
    except Exception as exc:
        logger.warning("Tile %d/%d/%d failed: %s", tile.zoom, tile.x, tile.y, exc)
        return None
    if img.size != (TILE_SIZE, TILE_SIZE):
        img = img.resize((TILE_SIZE, TILE_SIZE))
    return img.convert("RGB")


def _progress_steps(total: int) -> int:
    """Report every ~10% of tiles."""
    return max(1, total // 10)


def stitch_tiles(
    bounds: TileBounds,
    source: Optional[ImagerySource],
    max_workers: int = 8,
    progress: Optional[ProgressFn] = None,
) -> Tuple[Image.Image, int]:
    """Fetch every tile of *bounds* and composite them.

    Returns:
        (image, failed_count); image is always bounds.pixel_width x pixel_height.

    Raises:
        ImagerySourceUnavailable: if *source* is None.
    """
    if source is None:
        raise ImagerySourceUnavailable("No imagery source available")

    tiles = list(bounds.tiles())
    total = len(tiles)
    step = _progress_steps(total)
    fetched: Dict[TileIndex, Optional[Image.Image]] = {}
    done = 0

    logger.info("Fetching %d tiles at zoom %d with %d workers", total, bounds.zoom, max_workers)
    with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        future_to_tile = {executor.submit(_fetch_one, source, t): t for t in tiles}
        for future in concurrent.futures.as_completed(future_to_tile):
            fetched[future_to_tile[future]] = future.result()
            done += 1
            if done % step == 0 or done == total:
                logger.info("Tiles: %d/%d (%d%%)", done, total, done * 100 // total)
                if progress is not None:
                    progress(done, total)

    canvas = Image.new("RGB", (bounds.pixel_width, bounds.pixel_height), BLANK_RGB)
    failed = 0
    for tile in tiles:   # row-major
        img = fetched.get(tile)
        if img is None:
            failed += 1
            continue
        canvas.paste(img, bounds.pixel_offset(tile))

    if failed == total:
        logger.error("All %d tiles failed; the stitched image is blank", total)
    elif failed:
        logger.warning("%d of %d tiles failed and were left blank", failed, total)
    return canvas, failed


def encode_image(image: Image.Image, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """JPEG-encode the stitched raster for transport."""
    buf = io.BytesIO()
    image.convert("RGB").save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def encode_image_base64(image: Image.Image, quality: int = DEFAULT_JPEG_QUALITY) -> str:
    return base64.b64encode(encode_image(image, quality)).decode("ascii")
