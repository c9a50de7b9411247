"""Tests for the model <-> geodetic affine transform."""

import math

import pytest

from errors import AnchorNotSet
from geodetic_transform import (
    METERS_PER_DEGREE_LAT,
    GeodeticTransform,
    check_anchor,
    meters_per_degree_lon,
    model_heading_deg,
    normalized_basis,
)
from models import EarthAnchor, HeightReference


def test_times_square_offset(times_square_anchor):
    g = GeodeticTransform(times_square_anchor).to_geodetic((100.0, 200.0, 0.0))

    assert g.lat == pytest.approx(40.7580 + 200 / 111320, abs=1e-9)
    assert g.lat == pytest.approx(40.75980, abs=1e-5)
    expected_lon = -73.9855 + 100 / (111320 * math.cos(math.radians(40.7580)))
    assert g.lon == pytest.approx(expected_lon, abs=1e-9)
    assert g.lon == pytest.approx(-73.98432, abs=2e-5)
    assert g.height == 0.0
    assert g.reference is HeightReference.ANCHOR_RELATIVE


def test_base_point_maps_to_anchor_and_back():
    anchor = EarthAnchor(
        latitude=51.5007, longitude=-0.1246, elevation=12.0,
        model_base_point=(250.0, -40.0, 3.0),
    )
    t = GeodeticTransform(anchor)
    g = t.to_geodetic(anchor.model_base_point)
    assert (g.lat, g.lon, g.height) == pytest.approx((51.5007, -0.1246, 0.0))
    assert g.reference is HeightReference.ANCHOR_RELATIVE

    back = t.to_model(g.lat, g.lon, g.height)
    assert back == pytest.approx(anchor.model_base_point, abs=1e-9)


def test_inverse_without_height_stays_on_base_plane(times_square_anchor):
    t = GeodeticTransform(times_square_anchor)
    x, y, z = t.to_model(40.7580 + 50 / METERS_PER_DEGREE_LAT, -73.9855)
    assert (x, y, z) == pytest.approx((0.0, 50.0, 0.0), abs=1e-6)


def test_height_passes_through_up_axis(times_square_anchor):
    g = GeodeticTransform(times_square_anchor).to_geodetic((0, 0, 25.0))
    assert g.height == pytest.approx(25.0)


def test_rotated_basis():
    # model +X points north, model -Y points east
    anchor = EarthAnchor(latitude=0.0, longitude=0.0,
                         model_north=(1.0, 0.0, 0.0), model_east=(0.0, -1.0, 0.0))
    g = GeodeticTransform(anchor).to_geodetic((111.32, 0.0, 0.0))
    assert g.lat == pytest.approx(0.001)
    assert g.lon == pytest.approx(0.0, abs=1e-12)
    assert model_heading_deg(anchor) == pytest.approx(-90.0)


def test_unit_scale_millimetres(times_square_anchor):
    anchor = EarthAnchor(latitude=40.7580, longitude=-73.9855, unit_scale=0.001)
    mm = GeodeticTransform(anchor).to_geodetic((0.0, 200000.0, 0.0))
    m = GeodeticTransform(times_square_anchor).to_geodetic((0.0, 200.0, 0.0))
    assert mm.lat == pytest.approx(m.lat)


def test_missing_anchor_raises():
    with pytest.raises(AnchorNotSet):
        GeodeticTransform(None)


def test_check_anchor_rejects_non_orthonormal_basis():
    with pytest.raises(ValueError):
        check_anchor(EarthAnchor(model_north=(0, 2, 0)))
    with pytest.raises(ValueError):
        check_anchor(EarthAnchor(model_north=(0, 1, 0), model_east=(0.6, 0.8, 0)))
    with pytest.raises(ValueError):
        check_anchor(EarthAnchor(unit_scale=0.0))


def test_normalized_basis_orthogonalizes():
    north, east = normalized_basis((0, 3, 0), (2, 1, 0))
    assert north == pytest.approx((0, 1, 0))
    assert east == pytest.approx((1, 0, 0))
    with pytest.raises(ValueError):
        normalized_basis((0, 1, 0), (0, 5, 0))


def test_meters_per_degree_lon_shrinks_with_latitude():
    assert meters_per_degree_lon(0.0) == pytest.approx(111320.0)
    assert meters_per_degree_lon(60.0) == pytest.approx(55660.0)


def test_anchor_elevation_not_in_relative_height():
    anchor = EarthAnchor(latitude=46.0, longitude=7.0, elevation=1500.0)
    g = GeodeticTransform(anchor).to_geodetic((0.0, 0.0, 4.0))
    assert g.height == pytest.approx(4.0)
