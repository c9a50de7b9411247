"""HTTP bridge served from the CAD side for the globe viewer.

Endpoints:
  GET  /export-geometry   -> sync payload or {"error": ...}
  POST /set-earth-anchor  {"lat", "lon"} -> {"success": true} or {"error": ...}
  POST /import-map-image  {"imageBase64", "sizeMeters", "pixelWidth", "pixelHeight"}
                          -> {"success": true, "imagePath": ...} or {"error": ...}
  POST /log               plain-text body, echoed to the CAD-side log
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from export_service import ExportService
from payload_writer import error_response

logger = logging.getLogger(__name__)
viewer_logger = logging.getLogger("mcatlas.viewer")


class AnchorRequest(BaseModel):
    lat: float
    lon: float


class MapImageBody(BaseModel):
    imageBase64: str
    sizeMeters: float
    pixelWidth: int
    pixelHeight: int
    centerLat: Optional[float] = None
    centerLon: Optional[float] = None


def create_app(service: ExportService) -> FastAPI:
    app = FastAPI(title="McAtlas CAD Bridge", version="0.1.0")

    # The viewer runs as a separate desktop app with its own origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError):
        message = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(status_code=400, content=error_response(message, "InvalidPayload"))

    # Service calls touch the document; they run in FastAPI's threadpool.

    @app.get("/export-geometry")
    def export_geometry() -> dict:
        result = service.handle_export()
        if "error" not in result:
            logger.info("Sent geometry to viewer")
        return result

    @app.post("/set-earth-anchor")
    def set_earth_anchor(body: AnchorRequest) -> dict:
        return service.handle_set_anchor(body.model_dump())

    @app.post("/import-map-image")
    def import_map_image(body: MapImageBody) -> dict:
        return service.handle_import_map_image(body.model_dump(exclude_none=True))

    @app.post("/log", response_class=PlainTextResponse)
    async def log_message(request: Request) -> str:
        message = (await request.body()).decode("utf-8", errors="replace")
        viewer_logger.info("[viewer] %s", message)
        return ""

    return app
