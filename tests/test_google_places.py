from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from brewmatch.config import Configuration
from brewmatch.models import Bounds, CircleRestriction, RectRestriction
from brewmatch.services.google_places import (
    GooglePlacesClient,
    PlacesError,
    _RetryPolicy,
    parse_place,
    parse_price_level,
)

CFG = Configuration(google_places_api_key="test-key")

RAW_PLACE = {
    "id": "ChIJ123",
    "displayName": {"text": "Anchorhead Coffee", "languageCode": "en"},
    "formattedAddress": "1600 7th Ave, Seattle, WA",
    "location": {"latitude": 47.6135, "longitude": -122.3355},
    "types": ["coffee_shop", "cafe", "food", "point_of_interest"],
    "primaryType": "coffee_shop",
    "rating": 4.6,
    "userRatingCount": 1432,
    "priceLevel": "PRICE_LEVEL_MODERATE",
    "regularOpeningHours": {"weekdayDescriptions": ["Monday: 7AM-5PM", "Tuesday: 7AM-5PM"]},
    "photos": [{"name": f"places/ChIJ123/photos/{i}"} for i in range(6)],
    "editorialSummary": {"text": "Specialty coffee and honeycomb cake."},
    "outdoorSeating": False,
}


def _resp(status: int = 200, payload=None, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload if payload is not None else {}
    return resp


def _client(*responses) -> GooglePlacesClient:
    session = MagicMock()
    session.request.side_effect = list(responses)
    client = GooglePlacesClient(CFG, session=session)
    client.retry_policy = _RetryPolicy(retries=3, base_delay=0)
    return client


def test_parse_place() -> None:
    place = parse_place(RAW_PLACE)
    assert place.id == "ChIJ123"
    assert place.name == "Anchorhead Coffee"
    assert place.primary_type == "coffee_shop"
    assert place.price_level == 2
    assert place.user_rating_count == 1432
    assert place.lat == pytest.approx(47.6135)
    assert len(place.photos) == 4
    assert place.editorial_summary == "Specialty coffee and honeycomb cake."
    assert place.opening_hours.startswith("Monday: 7AM-5PM")
    assert place.outdoor_seating is False
    assert parse_place({"displayName": {"text": "No id"}}) is None


@pytest.mark.parametrize(
    "raw,expected",
    [("PRICE_LEVEL_FREE", 0), ("PRICE_LEVEL_VERY_EXPENSIVE", 4), (3, 3), ("PRICE_LEVEL_UNSPECIFIED", None), (None, None)],
)
def test_parse_price_level(raw, expected) -> None:
    assert parse_price_level(raw) == expected


def test_search_text_request_shape() -> None:
    client = _client(_resp(payload={"places": [RAW_PLACE, {"displayName": "bad"}], "nextPageToken": "tok-2"}))
    bounds = Bounds(north=47.7, south=47.5, east=-122.2, west=-122.4)
    places, token = client.search_text("cafe coffee", RectRestriction(bounds), page_token="tok-1")

    assert [p.id for p in places] == ["ChIJ123"]
    assert token == "tok-2"
    method, url = client.session.request.call_args.args
    kwargs = client.session.request.call_args.kwargs
    assert method == "POST"
    assert url == "https://places.googleapis.com/v1/places:searchText"
    assert kwargs["headers"]["X-Goog-Api-Key"] == "test-key"
    assert "places.primaryType" in kwargs["headers"]["X-Goog-FieldMask"]
    assert "nextPageToken" in kwargs["headers"]["X-Goog-FieldMask"]
    body = kwargs["json"]
    assert body["textQuery"] == "cafe coffee"
    assert body["includedType"] == "coffee_shop"
    assert body["maxResultCount"] == 20
    assert body["pageToken"] == "tok-1"
    assert body["locationRestriction"]["rectangle"]["high"] == {"latitude": 47.7, "longitude": -122.2}


def test_circle_is_sent_as_bias() -> None:
    client = _client(_resp(payload={}))
    places, token = client.search_text("cafe", CircleRestriction(47.6, -122.3, 1500.0))
    assert places == [] and token is None
    body = client.session.request.call_args.kwargs["json"]
    assert body["locationBias"]["circle"]["radius"] == 1500.0
    assert "pageToken" not in body


def test_retries_then_succeeds() -> None:
    client = _client(_resp(503, text="busy"), requests.ConnectionError("reset"), _resp(payload={"places": []}))
    assert client.search_text("cafe", CircleRestriction(0, 0, 10)) == ([], None)
    assert client.session.request.call_count == 3


def test_retries_exhausted_raise() -> None:
    client = _client(*[_resp(429, text="quota")] * 4)
    with pytest.raises(PlacesError, match="429"):
        client.search_text("cafe", CircleRestriction(0, 0, 10))
    assert client.session.request.call_count == 4


def test_client_errors_are_not_retried() -> None:
    client = _client(_resp(400, text="bad field mask"))
    with pytest.raises(PlacesError, match="400"):
        client.search_text("cafe", CircleRestriction(0, 0, 10))
    assert client.session.request.call_count == 1


def test_invalid_json() -> None:
    client = _client(_resp(payload=ValueError("nope")))
    with pytest.raises(PlacesError, match="invalid json"):
        client.search_text("cafe", CircleRestriction(0, 0, 10))


def test_non_object_body_is_rejected() -> None:
    client = _client(_resp(payload=["not", "an", "object"]))
    with pytest.raises(PlacesError, match="unexpected response body"):
        client.fetch_fields("ChIJ123", ["allowsDogs"])


def test_missing_key() -> None:
    client = GooglePlacesClient(Configuration(), session=MagicMock())
    with pytest.raises(PlacesError):
        client.search_text("cafe", CircleRestriction(0, 0, 10))


def test_fetch_fields_maps_names() -> None:
    payload = {
        "allowsDogs": True,
        "servesBrunch": False,
        "accessibilityOptions": {"wheelchairAccessibleEntrance": True},
        "photos": [{"name": "places/x/photos/9"}],
    }
    client = _client(_resp(payload=payload))
    fields = client.fetch_fields("ChIJ123", ["allowsDogs", "servesBrunch", "accessibilityOptions", "notAField"])
    assert fields == {
        "allows_dogs": True,
        "serves_brunch": False,
        "accessibility_options": {"wheelchairAccessibleEntrance": True},
        "photos": ["places/x/photos/9"],
    }
    method, url = client.session.request.call_args.args
    assert (method, url) == ("GET", "https://places.googleapis.com/v1/places/ChIJ123")
    mask = client.session.request.call_args.kwargs["headers"]["X-Goog-FieldMask"]
    assert mask == "allowsDogs,servesBrunch,accessibilityOptions,photos"


def test_fetch_fields_nothing_requested() -> None:
    client = _client()
    assert client.fetch_fields("ChIJ123", ["notAField"]) == {}
    client.session.request.assert_not_called()


def test_reverse_geocode() -> None:
    payload = {"status": "OK", "results": [{"place_id": "street"}, {"place_id": "dest-seattle"}, {}]}
    client = _client(_resp(payload=payload))
    assert client.reverse_geocode(47.61, -122.33) == ["street", "dest-seattle"]
    params = client.session.request.call_args.kwargs["params"]
    assert params["latlng"] == "47.61,-122.33"


def test_reverse_geocode_denied() -> None:
    client = _client(_resp(payload={"status": "REQUEST_DENIED", "error_message": "key"}))
    with pytest.raises(PlacesError, match="REQUEST_DENIED"):
        client.reverse_geocode(0, 0)
