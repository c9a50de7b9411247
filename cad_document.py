"""CAD document collaborator: layers, objects, the earth anchor and asset export.

Inside a CAD host this interface is backed by the host's API. Outside one,
``InMemoryDocument`` and the JSON-file backed ``JsonDocument`` stand in so
the bridge can run and be tested.
"""

import json
import logging
import shutil
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from cad_geometry import Geometry, geometry_from_dict
from geodetic_transform import normalized_basis
from models import EarthAnchor

logger = logging.getLogger(__name__)

Exporter = Callable[[List["CadObject"], Path], bool]


@dataclass
class CadObject:
    id: str
    layer: str
    geometry: Optional[Geometry] = None


@dataclass
class PlacedPicture:
    path: str
    width: float    # model units
    height: float   # model units
    center: Tuple[float, float, float] = (0.0, 0.0, 0.0)


class CadDocument:
    """Interface of the CAD host document."""

    def get_anchor(self) -> Optional[EarthAnchor]:
        raise NotImplementedError

    def set_anchor(self, anchor: EarthAnchor) -> None:
        raise NotImplementedError

    def objects_on_layer(self, layer: str) -> List[CadObject]:
        raise NotImplementedError

    def export_asset(self, objects: List[CadObject], path: Path) -> bool:
        """Export *objects* as a binary glTF at *path*; False if the export failed."""
        raise NotImplementedError

    def place_picture(self, picture: PlacedPicture) -> None:
        raise NotImplementedError


class InMemoryDocument(CadDocument):
    def __init__(
        self,
        anchor: Optional[EarthAnchor] = None,
        objects: Optional[List[CadObject]] = None,
        exporter: Optional[Exporter] = None,
    ):
        self.anchor = anchor
        self.objects: List[CadObject] = list(objects or [])
        self.exporter = exporter
        self.pictures: List[PlacedPicture] = []

    def get_anchor(self) -> Optional[EarthAnchor]:
        return self.anchor

    def set_anchor(self, anchor: EarthAnchor) -> None:
        self.anchor = anchor

    def objects_on_layer(self, layer: str) -> List[CadObject]:
        return [o for o in self.objects if o.layer == layer]

    def export_asset(self, objects: List[CadObject], path: Path) -> bool:
        if self.exporter is None:
            logger.error("No asset exporter configured")
            return False
        return bool(self.exporter(objects, path))

    def place_picture(self, picture: PlacedPicture) -> None:
        self.pictures = [p for p in self.pictures if p.path != picture.path]
        self.pictures.append(picture)


def anchor_to_dict(anchor: EarthAnchor) -> dict:
    d = asdict(anchor)
    return {
        "lat": d["latitude"],
        "lon": d["longitude"],
        "elevation": d["elevation"],
        "basePoint": list(d["model_base_point"]),
        "north": list(d["model_north"]),
        "east": list(d["model_east"]),
        "unitScale": d["unit_scale"],
    }


def anchor_from_dict(data: dict) -> EarthAnchor:
    """Read an anchor; hand-edited north/east vectors are orthonormalised."""
    north, east = normalized_basis(data.get("north", (0.0, 1.0, 0.0)),
                                   data.get("east", (1.0, 0.0, 0.0)))
    return EarthAnchor(
        latitude=float(data["lat"]),
        longitude=float(data["lon"]),
        elevation=float(data.get("elevation", 0.0)),
        model_base_point=tuple(data.get("basePoint", (0.0, 0.0, 0.0))),
        model_north=north,
        model_east=east,
        unit_scale=float(data.get("unitScale", 1.0)),
    )


@dataclass
class _JsonState:
    anchor: Optional[dict] = None
    asset_source: Optional[str] = None
    layers: Dict[str, list] = field(default_factory=dict)
    pictures: List[dict] = field(default_factory=list)


class JsonDocument(InMemoryDocument):
    """Document stored as a JSON file.

    Layout::

        {
          "anchor": {"lat": .., "lon": .., "elevation": .., "basePoint": [..],
                     "north": [..], "east": [..], "unitScale": ..} | null,
          "assetSource": "massing.glb",
          "layers": {"cesium_massing": [{"id": "a", "type": "extrusion", ...}],
                     "clip": [{"id": "c", "type": "circle", ...}]},
          "pictures": [...]
        }

    "Exporting" copies ``assetSource`` (relative to the file) to the target
    path. Anchor changes and placed pictures are written back to the file.
    """

    def __init__(self, path):
        self.path = Path(path)
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        state = _JsonState(
            anchor=raw.get("anchor"),
            asset_source=raw.get("assetSource"),
            layers=raw.get("layers") or {},
            pictures=raw.get("pictures") or [],
        )
        objects = []
        for layer, items in state.layers.items():
            for i, item in enumerate(items):
                geometry = None
                if "type" in item:
                    try:
                        geometry = geometry_from_dict(item)
                    except (KeyError, ValueError) as exc:
                        logger.warning("Object %s on %s not loaded: %s",
                                       item.get("id", i), layer, exc)
                objects.append(CadObject(id=str(item.get("id", f"{layer}-{i}")),
                                         layer=layer, geometry=geometry))
        anchor = anchor_from_dict(state.anchor) if state.anchor else None
        super().__init__(anchor=anchor, objects=objects, exporter=self._copy_asset)
        self._raw = raw
        self.pictures = [PlacedPicture(p["path"], p["width"], p["height"],
                                       tuple(p.get("center", (0.0, 0.0, 0.0))))
                         for p in state.pictures]
        self._asset_source = state.asset_source

    def _copy_asset(self, objects: List[CadObject], target: Path) -> bool:
        if not self._asset_source:
            logger.error("Document has no assetSource to export")
            return False
        source = Path(self._asset_source)
        if not source.is_absolute():
            source = self.path.parent / source
        if not source.is_file():
            logger.error("Asset source %s does not exist", source)
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return True

    def set_anchor(self, anchor: EarthAnchor) -> None:
        super().set_anchor(anchor)
        self._raw["anchor"] = anchor_to_dict(anchor)
        self._save()

    def place_picture(self, picture: PlacedPicture) -> None:
        super().place_picture(picture)
        self._raw["pictures"] = [
            {"path": p.path, "width": p.width, "height": p.height, "center": list(p.center)}
            for p in self.pictures
        ]
        self._save()

    def _save(self) -> None:
        self.path.write_text(json.dumps(self._raw, indent=2), encoding="utf-8")
