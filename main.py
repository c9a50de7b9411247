"""Command-line entry point for McAtlas.

    mcatlas serve --document model.json      run the CAD bridge on a JSON document
    mcatlas sync                             one sync against a running bridge
    mcatlas export-map --lat .. --lon ..     stitch map tiles and send them to the CAD side
    mcatlas tiles --lat .. --lon ..          print tile bounds as JSON
    mcatlas set-anchor --document model.json --lat .. --lon ..

Settings come from --config (JSON) and MCATLAS_* environment variables.
"""

import argparse
import json
import logging
import os
import sys

# Make all sibling modules importable by their bare name
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import load_settings
from errors import McAtlasError

logger = logging.getLogger("mcatlas")


def _cmd_serve(args, settings) -> int:
    import uvicorn

    from bridge_server import create_app
    from cad_document import JsonDocument
    from export_service import ExportService

    service = ExportService(JsonDocument(args.document), settings)
    uvicorn.run(create_app(service), host=settings.host, port=settings.port,
                log_level=args.log_level.lower())
    return 0


def _cmd_sync(args, settings) -> int:
    from connection import BridgeConnection, RemoteLogHandler
    from placement import PlacementResolver
    from scene import LoggingRenderer, SceneHandle
    from sync_orchestrator import SyncOrchestrator
    from terrain import HttpTerrainSource

    conn = BridgeConnection(settings.bridge_url, settings.http_timeout).connect()
    if args.remote_log:
        logging.getLogger().addHandler(RemoteLogHandler(conn))
    terrain = None
    if settings.terrain_url_template:
        terrain = HttpTerrainSource(settings.terrain_url_template, timeout=settings.http_timeout)
    resolver = PlacementResolver(
        terrain,
        heading_correction_deg=settings.heading_correction_deg,
        pitch_deg=settings.pitch_correction_deg,
        roll_deg=settings.roll_correction_deg,
    )
    orchestrator = SyncOrchestrator(conn, resolver, SceneHandle(LoggingRenderer()),
                                    queue_policy=settings.queue_policy)
    outcome = orchestrator.sync()
    asset = outcome.asset
    print(json.dumps({
        "cycleId": outcome.cycle_id,
        "assetReference": asset.asset_reference,
        "position": {"lat": asset.position.lat, "lon": asset.position.lon,
                     "height": asset.position.height},
        "orientation": {"heading": asset.orientation.heading_deg,
                        "pitch": asset.orientation.pitch_deg,
                        "roll": asset.orientation.roll_deg},
        "clippingPolygons": len(outcome.clipping),
    }, indent=2))
    return 0


def _cmd_export_map(args, settings) -> int:
    from connection import BridgeConnection
    from map_export import MapExporter, resolve_view_center
    from models import GeodeticPoint
    from tile_stitcher import XyzImagerySource

    picked = None if args.lat is None or args.lon is None else GeodeticPoint(args.lat, args.lon)
    camera = None
    if args.camera_lat is not None and args.camera_lon is not None:
        camera = GeodeticPoint(args.camera_lat, args.camera_lon, args.camera_height)
    if picked is None and camera is None:
        raise SystemExit("give --lat and --lon, or --camera-lat and --camera-lon")
    center = resolve_view_center(picked, camera)

    conn = BridgeConnection(settings.bridge_url, settings.http_timeout).connect()
    imagery = XyzImagerySource(
        settings.tile_url_template,
        timeout=settings.http_timeout,
        retries=settings.tile_retries,
        user_agent=settings.user_agent,
    )
    result = MapExporter(conn, imagery, settings).export(
        center,
        size_meters=args.size,
        zoom=args.zoom,
        save_to=args.save,
    )
    print(json.dumps({
        "imagePath": result.image_path,
        "failedTiles": result.failed_tiles,
        "bounds": result.bounds.to_dict(),
    }, indent=2))
    return 0


def _cmd_tiles(args, settings) -> int:
    from tile_math import calculate_tile_bounds

    size = args.size or settings.export_size_meters
    zoom = settings.tile_zoom if args.zoom is None else args.zoom
    print(json.dumps(calculate_tile_bounds(args.lat, args.lon, size, zoom).to_dict(), indent=2))
    return 0


def _cmd_set_anchor(args, settings) -> int:
    from cad_document import JsonDocument
    from export_service import ExportService

    service = ExportService(JsonDocument(args.document), settings)
    if args.epsg is not None:
        if args.eastings is None or args.northings is None:
            raise SystemExit("--epsg needs --eastings and --northings")
        anchor = service.set_anchor_from_projected(args.eastings, args.northings, args.epsg,
                                                   args.elevation)
    else:
        if args.lat is None or args.lon is None:
            raise SystemExit("give --lat and --lon, or --epsg with --eastings/--northings")
        anchor = service.set_earth_anchor(args.lat, args.lon, args.elevation)
    print(f"Anchor set to lat={anchor.latitude:.7f} lon={anchor.longitude:.7f}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mcatlas", description=__doc__.splitlines()[0])
    parser.add_argument("--config", help="JSON settings file")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="run the CAD bridge on a JSON document")
    p.add_argument("--document", required=True)
    p.set_defaults(func=_cmd_serve)

    p = sub.add_parser("sync", help="sync the CAD model into the viewer scene once")
    p.add_argument("--remote-log", action="store_true",
                   help="forward log records to the CAD-side console")
    p.set_defaults(func=_cmd_sync)

    p = sub.add_parser("export-map", help="stitch a map image and import it on the CAD side")
    p.add_argument("--lat", type=float, help="surface point under the view centre")
    p.add_argument("--lon", type=float)
    p.add_argument("--camera-lat", type=float, help="camera position, used without --lat/--lon")
    p.add_argument("--camera-lon", type=float)
    p.add_argument("--camera-height", type=float, default=0.0)
    p.add_argument("--size", type=float, help="ground coverage in meters")
    p.add_argument("--zoom", type=int)
    p.add_argument("--save", help="also keep the image (and a .jgw world file) here")
    p.set_defaults(func=_cmd_export_map)

    p = sub.add_parser("tiles", help="print tile bounds for an area")
    p.add_argument("--lat", type=float, required=True)
    p.add_argument("--lon", type=float, required=True)
    p.add_argument("--size", type=float)
    p.add_argument("--zoom", type=int)
    p.set_defaults(func=_cmd_tiles)

    p = sub.add_parser("set-anchor", help="set the earth anchor of a JSON document")
    p.add_argument("--document", required=True)
    p.add_argument("--lat", type=float)
    p.add_argument("--lon", type=float)
    p.add_argument("--elevation", type=float)
    p.add_argument("--epsg", type=int, help="projected CRS of --eastings/--northings")
    p.add_argument("--eastings", type=float)
    p.add_argument("--northings", type=float)
    p.set_defaults(func=_cmd_set_anchor)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = load_settings(args.config)
        return args.func(args, settings)
    except McAtlasError as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
