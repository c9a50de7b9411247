"""Resolve an anchor-relative payload position into a renderer-ready placement."""

import logging
from typing import Optional

from models import GeodeticPoint, HeightReference, Orientation, PlacedAsset, SyncPayload
from terrain import TerrainSource, sample_or_zero

logger = logging.getLogger(__name__)

DEFAULT_HEADING_CORRECTION_DEG = 90.0


class PlacementResolver:
    """Terrain-aware vertical placement plus a configurable heading correction.

    The heading correction aligns the exporter's "+Y = north" convention with
    the renderer's heading zero. It depends on the exporting tool's axis
    convention and is therefore a setting, not a constant of the system.
    """

    def __init__(
        self,
        terrain: Optional[TerrainSource] = None,
        heading_correction_deg: float = DEFAULT_HEADING_CORRECTION_DEG,
        pitch_deg: float = 0.0,
        roll_deg: float = 0.0,
    ):
        self.terrain = terrain
        self.heading_correction_deg = heading_correction_deg
        self.pitch_deg = pitch_deg
        self.roll_deg = roll_deg

    def resolve_position(self, position: GeodeticPoint) -> GeodeticPoint:
        """finalHeight = terrainHeight(lat, lon) + position.height."""
        if position.reference is HeightReference.ABSOLUTE:
            raise ValueError("position is already terrain-resolved")
        ground = sample_or_zero(self.terrain, position.lat, position.lon)
        return GeodeticPoint(
            lat=position.lat,
            lon=position.lon,
            height=ground + position.height,
            reference=HeightReference.ABSOLUTE,
        )

    def orientation(self, heading_deg: float = 0.0) -> Orientation:
        heading = (heading_deg + self.heading_correction_deg) % 360.0
        return Orientation(heading_deg=heading, pitch_deg=self.pitch_deg, roll_deg=self.roll_deg)

    def resolve(self, payload: SyncPayload) -> PlacedAsset:
        position = self.resolve_position(payload.position)
        placed = PlacedAsset(
            asset_reference=payload.asset_reference,
            position=position,
            orientation=self.orientation(payload.heading_deg),
            cycle_id=payload.cycle_id,
        )
        logger.debug("Resolved placement %s", placed)
        return placed
