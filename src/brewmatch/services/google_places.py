from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import requests
from loguru import logger

from brewmatch.config import Configuration
from brewmatch.models import AMENITY_FIELDS, MAX_PHOTOS, CircleRestriction, Place, RectRestriction


class PlacesError(RuntimeError):
    pass


@dataclass
class _RetryPolicy:
    retries: int = 3
    base_delay: float = 0.5


PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}

SEARCH_FIELDS = (
    "id",
    "displayName",
    "formattedAddress",
    "location",
    "types",
    "primaryType",
    "rating",
    "userRatingCount",
    "priceLevel",
    "regularOpeningHours",
    "photos",
    "editorialSummary",
)

Restriction = Union[CircleRestriction, RectRestriction]


def parse_price_level(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return PRICE_LEVELS.get(str(value))


def _text(value: Any) -> Optional[str]:
    """Provider text fields arrive either as plain strings or as {"text": ...} objects."""
    if isinstance(value, dict):
        value = value.get("text") or value.get("overview")
    return str(value) if value else None


def _opening_hours(value: Any) -> Optional[str]:
    if not isinstance(value, dict):
        return _text(value)
    lines = value.get("weekdayDescriptions") or []
    if lines:
        return "; ".join(str(x) for x in lines)
    if "openNow" in value:
        return "open now" if value["openNow"] else "closed now"
    return None


def _photo_refs(photos: Any) -> List[str]:
    refs: list[str] = []
    for photo in photos or []:
        name = photo.get("name") if isinstance(photo, dict) else photo
        if name:
            refs.append(str(name))
    return refs[:MAX_PHOTOS]


def parse_place(raw: Dict[str, Any]) -> Optional[Place]:
    """Convert one provider place into a Place; records without an id are skipped."""
    place_id = raw.get("id")
    if not place_id:
        return None
    location = raw.get("location") or {}
    lat = location.get("latitude")
    lon = location.get("longitude")
    rating = raw.get("rating")
    count = raw.get("userRatingCount")

    place = Place(
        id=str(place_id),
        name=_text(raw.get("displayName")) or "Unknown",
        address=raw.get("formattedAddress") or None,
        lat=float(lat) if lat is not None else None,
        lon=float(lon) if lon is not None else None,
        types=[str(t) for t in raw.get("types") or []],
        primary_type=raw.get("primaryType") or None,
        rating=float(rating) if isinstance(rating, (int, float)) else None,
        user_rating_count=int(count) if isinstance(count, (int, float)) else None,
        price_level=parse_price_level(raw.get("priceLevel")),
        opening_hours=_opening_hours(raw.get("regularOpeningHours")),
        photos=_photo_refs(raw.get("photos")),
        editorial_summary=_text(raw.get("editorialSummary")),
    )
    base_amenities = parse_fields(raw)
    base_amenities.pop("photos", None)
    return place.merge_fields(base_amenities)


def parse_fields(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map provider amenity fields to Place attribute names."""
    fields: dict[str, Any] = {}
    for name, attr in AMENITY_FIELDS.items():
        if name in raw and raw[name] is not None:
            fields[attr] = raw[name]
    if raw.get("photos"):
        fields["photos"] = _photo_refs(raw["photos"])
    return fields


def restriction_body(restriction: Restriction) -> Dict[str, Any]:
    if isinstance(restriction, RectRestriction):
        b = restriction.bounds
        return {
            "locationRestriction": {
                "rectangle": {
                    "low": {"latitude": b.south, "longitude": b.west},
                    "high": {"latitude": b.north, "longitude": b.east},
                }
            }
        }
    # text search only accepts circles as a bias
    return {
        "locationBias": {
            "circle": {
                "center": {"latitude": restriction.lat, "longitude": restriction.lon},
                "radius": restriction.radius_m,
            }
        }
    }


class GooglePlacesClient:
    def __init__(self, cfg: Configuration, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.base = cfg.places_base_url.rstrip("/")
        self.session = session or requests.Session()
        self.retry_policy = _RetryPolicy()

    def _request(
        self,
        method: str,
        url: str,
        *,
        field_mask: Optional[str] = None,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> dict:
        if not self.cfg.google_places_api_key:
            raise PlacesError("GOOGLE_PLACES_API_KEY is not configured")
        headers = {"Accept": "application/json", "X-Goog-Api-Key": self.cfg.google_places_api_key}
        if field_mask:
            headers["X-Goog-FieldMask"] = field_mask
        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = self.session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json,
                    timeout=self.cfg.places_timeout,
                )
            except requests.RequestException as exc:  # network error
                if attempt <= policy.retries:
                    time.sleep(policy.base_delay * attempt)
                    continue
                raise PlacesError(f"request error: {exc}") from exc

            if resp.status_code in (429, 500, 502, 503, 504):
                if attempt <= policy.retries:
                    logger.debug("places upstream {} (attempt {}), retrying", resp.status_code, attempt)
                    time.sleep(policy.base_delay * attempt)
                    continue
                raise PlacesError(f"upstream {resp.status_code}: {resp.text[:300]}")

            if not resp.ok:
                raise PlacesError(f"upstream {resp.status_code}: {resp.text[:300]}")

            try:
                payload = resp.json()
            except ValueError as exc:
                raise PlacesError("invalid json response") from exc
            if not isinstance(payload, dict):
                raise PlacesError(f"unexpected response body: {type(payload).__name__}")
            return payload

    def search_text(
        self,
        text_query: str,
        restriction: Restriction,
        *,
        page_token: Optional[str] = None,
        included_type: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> Tuple[List[Place], Optional[str]]:
        """One page of text-search results and the token for the next page, if any."""
        body: dict[str, Any] = {
            "textQuery": text_query,
            "maxResultCount": max_results or self.cfg.places_max_results,
            **restriction_body(restriction),
        }
        included = included_type if included_type is not None else self.cfg.places_included_type
        if included:
            body["includedType"] = included
            body["strictTypeFiltering"] = True
        if page_token:
            body["pageToken"] = page_token

        mask = ",".join([*(f"places.{f}" for f in SEARCH_FIELDS), "nextPageToken"])
        payload = self._request("POST", f"{self.base}/places:searchText", field_mask=mask, json=body)

        places: list[Place] = []
        for raw in payload.get("places") or []:
            place = parse_place(raw)
            if place is not None:
                places.append(place)
        next_token = payload.get("nextPageToken") or None
        logger.debug("searchText '{}' -> {} places, next_page={}", text_query, len(places), bool(next_token))
        return places, next_token

    def fetch_fields(self, place_id: str, fields: Sequence[str]) -> Dict[str, Any]:
        """Supplementary amenity fields for one place, keyed by Place attribute name."""
        wanted = [f for f in fields if f in AMENITY_FIELDS]
        if not wanted:
            return {}
        payload = self._request("GET", f"{self.base}/places/{place_id}", field_mask=",".join([*wanted, "photos"]))
        return parse_fields(payload)

    def reverse_geocode(self, lat: float, lon: float) -> List[str]:
        """Place ids of every level of the address hierarchy containing the point."""
        payload = self._request(
            "GET",
            self.cfg.geocode_base_url,
            params={"latlng": f"{lat},{lon}", "key": self.cfg.google_places_api_key},
        )
        status = payload.get("status")
        if status not in (None, "OK", "ZERO_RESULTS"):
            raise PlacesError(f"geocode status {status}: {payload.get('error_message', '')}")
        return [r["place_id"] for r in payload.get("results") or [] if r.get("place_id")]

    def photo_url(self, photo_ref: str, max_width: int = 400) -> str:
        return f"{self.base}/{photo_ref}/media?maxWidthPx={max_width}&key={self.cfg.google_places_api_key}"
