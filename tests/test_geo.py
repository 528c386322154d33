import math

from brewmatch.models import Bounds
from brewmatch.services.bbox_builder import KM_PER_DEGREE, diagonal_km, expand_bbox_from_center
from brewmatch.utils import hash_identity, haversine_km


def test_haversine_zero_and_symmetric():
    assert haversine_km(47.6, -122.3, 47.6, -122.3) == 0.0
    a = haversine_km(47.6, -122.3, 45.5, -122.7)
    b = haversine_km(45.5, -122.7, 47.6, -122.3)
    assert math.isclose(a, b)


def test_haversine_one_degree_at_equator():
    d = haversine_km(0.0, 0.0, 1.0, 0.0)
    assert abs(d - 111.19) < 0.5


def test_expand_bbox_half_width():
    lat, lon = 47.6062, -122.3321  # Seattle
    bbox = expand_bbox_from_center(lat, lon, 50.0)
    assert bbox.south < lat < bbox.north
    assert bbox.west < lon < bbox.east
    # north-south half width is exactly 50 km on the haversine sphere
    assert math.isclose(haversine_km(lat, lon, bbox.north, lon), 50.0, rel_tol=1e-6)
    assert math.isclose((bbox.north - lat) * KM_PER_DEGREE, 50.0, rel_tol=1e-9)


def test_expand_bbox_clamps_poles():
    bbox = expand_bbox_from_center(89.9, 0.0, 50.0)
    assert bbox.north == 90.0


def test_diagonal_km():
    bounds = Bounds(north=1.0, south=0.0, east=1.0, west=0.0)
    assert abs(diagonal_km(bounds) - 157.25) < 0.5


def test_hash_identity_is_stable_and_opaque():
    ident = hash_identity("203.0.113.9")
    assert ident == hash_identity("203.0.113.9")
    assert ident.startswith("ip-")
    assert len(ident) == 19
    assert hash_identity("203.0.113.10") != ident


def test_expand_bbox_wraps_antimeridian():
    bbox = expand_bbox_from_center(-17.7, 179.9, 50.0)
    assert -180.0 <= bbox.east < 0.0
    assert 0.0 < bbox.west < 180.0
    assert bbox.west > bbox.east
    # width is unchanged by wrapping
    width_deg = (bbox.east - bbox.west) % 360.0
    expected = 100.0 / (KM_PER_DEGREE * math.cos(math.radians(-17.7)))
    assert math.isclose(width_deg, expected, rel_tol=1e-9)


def test_expand_bbox_near_pole_spans_all_longitudes():
    bbox = expand_bbox_from_center(89.99, 10.0, 50.0)
    assert (bbox.west, bbox.east) == (-180.0, 180.0)
