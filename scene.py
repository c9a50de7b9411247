"""Viewer-side scene state: the current placed asset and the current clipping set.

The orchestrator is the only writer; the renderer is the only reader. Both
references change by full replacement under a lock, so an observer sees
either the old state or the new one. A renderer error during a replacement
leaves the previous state in place.
"""

import logging
import threading
from typing import Any, List, Optional

from models import ClippingLoop, PlacedAsset

logger = logging.getLogger(__name__)


class Renderer:
    """Interface of the external 3D renderer."""

    def add_asset(self, asset: PlacedAsset) -> Any:
        """Show *asset*; return a handle accepted by remove_asset."""
        raise NotImplementedError

    def remove_asset(self, handle: Any) -> None:
        raise NotImplementedError

    def set_clipping(self, loops: List[ClippingLoop]) -> None:
        """Apply *loops* as cut-out masks to the terrain and the 3D surface layer.

        An empty list clears all clipping.
        """
        raise NotImplementedError


class LoggingRenderer(Renderer):
    """Renderer that only records and logs; used by the CLI and tests."""

    def __init__(self):
        self.assets = {}
        self.clipping: List[ClippingLoop] = []
        self._next = 0

    def add_asset(self, asset: PlacedAsset) -> int:
        self._next += 1
        self.assets[self._next] = asset
        logger.info(
            "Placed %s at lat=%.7f lon=%.7f h=%.2f heading=%.1f",
            asset.asset_reference, asset.position.lat, asset.position.lon,
            asset.position.height, asset.orientation.heading_deg,
        )
        return self._next

    def remove_asset(self, handle: int) -> None:
        self.assets.pop(handle, None)
        logger.info("Removed asset %s", handle)

    def set_clipping(self, loops: List[ClippingLoop]) -> None:
        self.clipping = list(loops)
        logger.info("Active clipping loops: %d", len(self.clipping))


class SceneHandle:
    """Owns the single current PlacedAsset and the current clipping set."""

    def __init__(self, renderer: Renderer):
        self.renderer = renderer
        self._lock = threading.Lock()
        self._asset: Optional[PlacedAsset] = None
        self._asset_handle: Any = None
        self._clipping: List[ClippingLoop] = []

    @property
    def current_asset(self) -> Optional[PlacedAsset]:
        return self._asset

    @property
    def current_clipping(self) -> List[ClippingLoop]:
        return list(self._clipping)

    def replace_asset(self, asset: PlacedAsset) -> None:
        """Show *asset* in place of the previous one (if any)."""
        with self._lock:
            self._swap_asset(asset)

    def replace_clipping(self, loops: List[ClippingLoop]) -> None:
        """Swap the whole clipping set; an empty list clears it."""
        with self._lock:
            self._swap_clipping(loops)

    def apply(self, asset: PlacedAsset, loops: List[ClippingLoop]) -> None:
        """Replace clipping and asset together; on failure both stay as they were."""
        with self._lock:
            previous = self._clipping
            self._swap_clipping(loops)
            try:
                self._swap_asset(asset)
            except Exception:
                logger.warning("Asset update failed; restoring the previous clipping set")
                self._swap_clipping(previous)
                raise

    def _swap_asset(self, asset: PlacedAsset) -> None:
        # the new asset is added before the old one goes, so a failing add
        # leaves the current asset on screen
        handle = self.renderer.add_asset(asset)
        if self._asset_handle is not None:
            try:
                self.renderer.remove_asset(self._asset_handle)
            except Exception:
                self.renderer.remove_asset(handle)
                raise
        self._asset_handle = handle
        self._asset = asset

    def _swap_clipping(self, loops: List[ClippingLoop]) -> None:
        loops = list(loops)
        self.renderer.set_clipping(loops)
        self._clipping = loops
