"""Tests for the CAD-side export, anchor-set and map-import operations."""

import base64
import io
import json

import pytest
from PIL import Image

from cad_document import CadObject, InMemoryDocument, JsonDocument
from cad_geometry import Polyline
from errors import AnchorNotSet, ExportFailed, InvalidPayload, NoSourceGeometry
from export_service import ExportService
from models import EarthAnchor, MapImageRequest
from payload_reader import read_payload


def _jpeg_b64(size=(64, 64)):
    buf = io.BytesIO()
    Image.new("RGB", size, (10, 120, 30)).save(buf, format="JPEG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


def test_export_builds_payload(document, settings):
    payload = ExportService(document, settings).export_geometry()

    assert payload.asset_reference == str(settings.asset_path)
    assert settings.asset_path.read_bytes().startswith(b"glTF")
    assert payload.position.lat == pytest.approx(40.7580)
    assert payload.position.lon == pytest.approx(-73.9855)
    assert len(payload.clipping_polygons) == 2
    assert payload.heading_deg == pytest.approx(0.0)


def test_export_wire_round_trip(document, settings):
    data = ExportService(document, settings).handle_export()
    parsed = read_payload(json.loads(json.dumps(data)))
    assert len(parsed.clipping_polygons) == 2
    assert parsed.clipping_polygons[0].vertices[0] == pytest.approx((-73.9855 - 20 / 84321.6, 40.7580 - 20 / 111320), abs=1e-6)


def test_export_without_anchor(massing_objects, settings):
    service = ExportService(InMemoryDocument(objects=massing_objects), settings)
    with pytest.raises(AnchorNotSet):
        service.export_geometry()
    assert service.handle_export()["code"] == "AnchorNotSet"


def test_export_without_source_geometry(times_square_anchor, clip_objects, settings):
    service = ExportService(InMemoryDocument(times_square_anchor, clip_objects), settings)
    with pytest.raises(NoSourceGeometry, match="cesium_massing"):
        service.export_geometry()


@pytest.mark.parametrize("exporter", [
    None,
    lambda objects, path: False,
    lambda objects, path: True,     # claims success, writes nothing
])
def test_export_failures(times_square_anchor, massing_objects, settings, exporter):
    doc = InMemoryDocument(times_square_anchor, massing_objects, exporter=exporter)
    response = ExportService(doc, settings).handle_export()
    assert response["code"] == "ExportFailed"
    assert "error" in response


def test_export_ignores_degenerate_clip_objects(document, settings):
    document.objects.append(CadObject("open", "clip", Polyline([(0, 0), (1, 0), (1, 1)])))
    assert len(ExportService(document, settings).export_geometry().clipping_polygons) == 2


def test_set_anchor_creates_default(settings):
    doc = InMemoryDocument()
    anchor = ExportService(doc, settings).set_earth_anchor(48.8584, 2.2945)
    assert doc.get_anchor() == anchor
    assert anchor.model_north == (0.0, 1.0, 0.0)
    assert anchor.model_base_point == (0.0, 0.0, 0.0)


def test_set_anchor_keeps_basis_and_base_point(settings):
    existing = EarthAnchor(1.0, 2.0, 5.0, (10.0, 10.0, 0.0),
                           (1.0, 0.0, 0.0), (0.0, -1.0, 0.0), unit_scale=0.001)
    doc = InMemoryDocument(anchor=existing)
    response = ExportService(doc, settings).handle_set_anchor({"lat": 40.0, "lon": -70.0})

    assert response == {"success": True}
    anchor = doc.get_anchor()
    assert (anchor.latitude, anchor.longitude, anchor.elevation) == (40.0, -70.0, 5.0)
    assert anchor.model_north == (1.0, 0.0, 0.0)
    assert anchor.model_base_point == (10.0, 10.0, 0.0)
    assert anchor.unit_scale == 0.001


def test_set_anchor_rejects_bad_request(settings):
    response = ExportService(InMemoryDocument(), settings).handle_set_anchor({"lat": "x"})
    assert response["code"] == "InvalidPayload"


def test_import_map_image(document, settings):
    service = ExportService(document, settings)
    response = service.handle_import_map_image({
        "imageBase64": _jpeg_b64(),
        "sizeMeters": 2000.0,
        "pixelWidth": 4864,
        "pixelHeight": 4864,
        "centerLat": 40.7580 + 10 / 111320,
        "centerLon": -73.9855,
    })

    assert response["success"] is True
    assert response["imagePath"] == str(settings.map_image_path)
    assert settings.map_image_path.read_bytes()[:2] == b"\xff\xd8"
    picture = document.pictures[-1]
    assert (picture.width, picture.height) == (2000.0, 2000.0)
    assert picture.center == pytest.approx((0.0, 10.0, 0.0), abs=1e-6)


def test_import_map_image_without_center_uses_base_point(document, settings):
    ExportService(document, settings).import_map_image(
        MapImageRequest(_jpeg_b64((64, 32)), 1000.0, 512, 256))
    picture = document.pictures[-1]
    assert picture.height == pytest.approx(500.0)
    assert picture.center == (0.0, 0.0, 0.0)


@pytest.mark.parametrize("image", ["not base64!", base64.b64encode(b"plain text").decode()])
def test_import_map_image_rejects_non_images(document, settings, image):
    with pytest.raises(InvalidPayload):
        ExportService(document, settings).import_map_image(MapImageRequest(image, 10.0, 256, 256))


def test_json_document_round_trip(tmp_path, settings):
    asset = tmp_path / "massing.glb"
    asset.write_bytes(b"glTF-binary")
    doc_path = tmp_path / "model.json"
    doc_path.write_text(json.dumps({
        "anchor": None,
        "assetSource": "massing.glb",
        "layers": {
            "cesium_massing": [{"id": "m1"}],
            "clip": [
                {"id": "c1", "type": "circle", "center": [0, 0], "radius": 10},
                {"id": "c2", "type": "spline"},
            ],
        },
    }))

    service = ExportService(JsonDocument(doc_path), settings)
    with pytest.raises(AnchorNotSet):
        service.export_geometry()

    service.set_earth_anchor(40.7580, -73.9855)
    reloaded = JsonDocument(doc_path)
    assert reloaded.get_anchor().latitude == 40.7580

    payload = ExportService(reloaded, settings).export_geometry()
    assert settings.asset_path.read_bytes() == b"glTF-binary"
    assert len(payload.clipping_polygons) == 1


def test_json_document_missing_asset_fails(tmp_path, settings):
    doc_path = tmp_path / "model.json"
    doc_path.write_text(json.dumps({
        "anchor": {"lat": 1.0, "lon": 2.0},
        "assetSource": "missing.glb",
        "layers": {"cesium_massing": [{"id": "m1"}]},
    }))
    with pytest.raises(ExportFailed):
        ExportService(JsonDocument(doc_path), settings).export_geometry()


def test_json_document_normalizes_hand_edited_basis(tmp_path):
    doc_path = tmp_path / "model.json"
    doc_path.write_text(json.dumps({
        "anchor": {"lat": 10.0, "lon": 20.0, "north": [0, 5, 0], "east": [3, 0.01, 0]},
        "layers": {},
    }))
    anchor = JsonDocument(doc_path).get_anchor()
    assert anchor.model_north == pytest.approx((0.0, 1.0, 0.0))
    assert anchor.model_east == pytest.approx((1.0, 0.0, 0.0))
