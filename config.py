"""Settings for the bridge server and the viewer-side sync engine.

Precedence: dataclass defaults < JSON file < ``MCATLAS_*`` environment
variables. Field names map to environment variables by upper-casing, e.g.
``heading_correction_deg`` -> ``MCATLAS_HEADING_CORRECTION_DEG``.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "MCATLAS_"

QUEUE_POLICIES = ("queue", "reject")


def _default_export_dir() -> str:
    return str(Path.home() / "Documents" / "McAtlas")


@dataclass
class Settings:
    # Bridge (CAD side)
    host: str = "localhost"
    port: int = 8080
    export_dir: str = field(default_factory=_default_export_dir)
    asset_filename: str = "mcatlas_massing.glb"
    map_image_filename: str = "mcatlas_map.jpg"
    source_layer: str = "cesium_massing"
    clip_layer: str = "clip"
    curve_samples: int = 64

    # Placement (viewer side). The heading correction depends on the axis
    # convention of the exporter in use; 90 matches +Y-north glTF export.
    heading_correction_deg: float = 90.0
    pitch_correction_deg: float = 0.0
    roll_correction_deg: float = 0.0

    # Map export
    tile_url_template: str = "https://tile.openstreetmap.org/{z}/{x}/{y}.png"
    tile_zoom: int = 18
    export_size_meters: float = 2000.0
    jpeg_quality: int = 92
    tile_concurrency: int = 8
    tile_retries: int = 2
    user_agent: str = "McAtlas/0.1"

    # Terrain
    terrain_url_template: str = ""
    http_timeout: float = 10.0

    # Orchestration
    queue_policy: str = "queue"

    @property
    def bridge_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def asset_path(self) -> Path:
        return Path(self.export_dir) / self.asset_filename

    @property
    def map_image_path(self) -> Path:
        return Path(self.export_dir) / self.map_image_filename

    def validate(self) -> "Settings":
        if self.queue_policy not in QUEUE_POLICIES:
            raise ValueError(
                f"queue_policy must be one of {QUEUE_POLICIES}, got {self.queue_policy!r}"
            )
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must be in 1..100, got {self.jpeg_quality}")
        if self.tile_concurrency < 1:
            raise ValueError("tile_concurrency must be at least 1")
        if self.curve_samples < 3:
            raise ValueError("curve_samples must be at least 3")
        return self

    def with_overrides(self, values: Mapping[str, Any]) -> "Settings":
        """Return a copy with known keys replaced, coerced to field types."""
        known = {f.name: f for f in fields(self)}
        current = {name: getattr(self, name) for name in known}
        for key, raw in values.items():
            if key not in known:
                logger.warning("Ignoring unknown setting %r", key)
                continue
            current[key] = _coerce(raw, type(current[key]))
        return Settings(**current)


def _coerce(raw: Any, target: type) -> Any:
    if isinstance(raw, target):
        return raw
    if target is bool:
        return str(raw).strip().lower() in ("1", "true", "yes", "on")
    return target(raw)


def _from_env(environ: Mapping[str, str]) -> Dict[str, str]:
    names = {f.name for f in fields(Settings)}
    out = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in names:
            out[name] = value
    return out


def load_settings(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build Settings from defaults, an optional JSON file and the environment.

    Raises:
        ValueError: if a value fails validation or the file is not a JSON object.
    """
    settings = Settings()
    if path:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
        settings = settings.with_overrides(data)
        logger.info("Loaded settings from %s", path)
    env = _from_env(os.environ if environ is None else environ)
    if env:
        settings = settings.with_overrides(env)
    return settings.validate()
