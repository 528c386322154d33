from __future__ import annotations

import math

from brewmatch.config import Configuration
from brewmatch.models import Bounds, CircleRestriction, Destination, RectRestriction
from brewmatch.services.bbox_builder import KM_PER_DEGREE, diagonal_km
from brewmatch.services.query_builder import (
    DEFAULT_KEYWORDS,
    base_keywords,
    build_location_restriction,
    build_query,
    build_text_query,
    category_terms,
    is_area_destination,
)

from fakes import make_place, seattle


def test_base_keywords_defaults_and_free_text() -> None:
    assert base_keywords() == list(DEFAULT_KEYWORDS)
    assert base_keywords(["matcha"], ["quiet", "pastries", "late"]) == ["matcha", "quiet", "pastries"]
    assert base_keywords(None, ["Cafe"]) == ["cafe", "coffee", "specialty coffee"]


def test_category_terms_skip_generic_and_redundant() -> None:
    refs = [
        make_place("a", primary_type="coffee_shop", types=["coffee_shop", "bakery", "point_of_interest", "food", "cafe"]),
        make_place("b", types=["book_store", "store", "establishment"]),
        make_place("c", types=["brunch_restaurant", "wine_bar"]),
    ]
    assert category_terms(refs) == ["bakery", "book store", "brunch restaurant"]


def test_text_query_caps_at_five_terms() -> None:
    query = build_text_query(
        ["cafe", "coffee", "specialty coffee"],
        ["bakery", "book store", "brunch restaurant"],
        ["outdoor", "patio"],
    )
    assert query == "cafe coffee outdoor patio bakery"


def test_text_query_fills_with_categories_then_keywords() -> None:
    assert build_text_query(["cafe", "coffee", "specialty coffee"]) == "cafe coffee specialty coffee"
    assert build_text_query(["cafe"], ["bakery"]) == "cafe bakery"


def test_build_query_orders_keyword_groups() -> None:
    refs = [make_place("a", primary_type="coffee_shop", types=["bakery"])]
    built = build_query(refs, seattle(), {"outdoorSeating": True}, ["cafe", "coffee"], Configuration())
    assert built.keywords == ["cafe", "coffee", "bakery", "outdoor", "patio"]
    assert built.category_terms == ["bakery"]
    assert built.preference_terms == ["outdoor", "patio"]
    assert built.is_area


def test_area_destination_uses_exact_bounds() -> None:
    dest = seattle()
    assert is_area_destination(dest)
    restriction, is_area = build_location_restriction(dest, Configuration())
    assert is_area
    assert isinstance(restriction, RectRestriction)
    assert restriction.bounds == dest.bounds


def test_large_area_degrades_to_50km_box() -> None:
    dest = Destination(
        label="Washington",
        lat=47.75,
        lon=-120.74,
        bounds=Bounds(north=49.0, south=45.54, east=-116.92, west=-124.85),
        types=["administrative_area_level_1", "political"],
    )
    assert diagonal_km(dest.bounds) > 100
    restriction, is_area = build_location_restriction(dest, Configuration())
    assert is_area
    assert isinstance(restriction, RectRestriction)
    b = restriction.bounds
    assert math.isclose((b.north - dest.lat) * KM_PER_DEGREE, 50.0, rel_tol=1e-9)
    assert math.isclose((dest.lat - b.south) * KM_PER_DEGREE, 50.0, rel_tol=1e-9)


def test_point_destination_uses_half_diagonal_radius() -> None:
    bounds = Bounds(north=47.6105, south=47.6085, east=-122.3400, west=-122.3430)
    dest = Destination(label="Pike Place", lat=47.6095, lon=-122.3415, bounds=bounds, types=["tourist_attraction"])
    restriction, is_area = build_location_restriction(dest, Configuration())
    assert not is_area
    assert isinstance(restriction, CircleRestriction)
    assert math.isclose(restriction.radius_m, diagonal_km(bounds) / 2 * 1000)


def test_point_radius_capped_at_50km() -> None:
    bounds = Bounds(north=49.0, south=45.0, east=-116.0, west=-125.0)
    dest = Destination(label="Hotel", lat=47.0, lon=-120.0, bounds=bounds, types=["lodging"])
    restriction, _ = build_location_restriction(dest, Configuration())
    assert restriction.radius_m == 50_000
