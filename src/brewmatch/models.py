"""Data models for the similar-cafe engine."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MAX_PHOTOS = 4

# Provider field name -> Place attribute for the supplementary amenity fields.
AMENITY_FIELDS: Dict[str, str] = {
    "outdoorSeating": "outdoor_seating",
    "takeout": "takeout",
    "delivery": "delivery",
    "dineIn": "dine_in",
    "reservable": "reservable",
    "goodForGroups": "good_for_groups",
    "goodForChildren": "good_for_children",
    "goodForWatchingSports": "good_for_watching_sports",
    "liveMusic": "live_music",
    "servesCoffee": "serves_coffee",
    "servesBreakfast": "serves_breakfast",
    "servesBrunch": "serves_brunch",
    "servesLunch": "serves_lunch",
    "servesDinner": "serves_dinner",
    "servesBeer": "serves_beer",
    "servesWine": "serves_wine",
    "servesCocktails": "serves_cocktails",
    "servesVegetarianFood": "serves_vegetarian_food",
    "allowsDogs": "allows_dogs",
    "restroom": "restroom",
    "menuForChildren": "menu_for_children",
    "accessibilityOptions": "accessibility_options",
    "paymentOptions": "payment_options",
    "parkingOptions": "parking_options",
}

AMENITY_ATTRS = frozenset(AMENITY_FIELDS.values())


@dataclass
class Bounds:
    north: float
    south: float
    east: float
    west: float


@dataclass
class Place:
    """A point of interest. Used both as a reference place and as a candidate."""

    id: str
    name: str
    address: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    types: list[str] = field(default_factory=list)
    primary_type: Optional[str] = None
    rating: Optional[float] = None
    user_rating_count: Optional[int] = None
    price_level: Optional[int] = None  # 0 (free) .. 4 (very expensive)
    opening_hours: Optional[str] = None
    photos: list[str] = field(default_factory=list)
    editorial_summary: Optional[str] = None
    # Atmosphere & amenities; None means "unknown"
    outdoor_seating: Optional[bool] = None
    takeout: Optional[bool] = None
    delivery: Optional[bool] = None
    dine_in: Optional[bool] = None
    reservable: Optional[bool] = None
    good_for_groups: Optional[bool] = None
    good_for_children: Optional[bool] = None
    good_for_watching_sports: Optional[bool] = None
    live_music: Optional[bool] = None
    serves_coffee: Optional[bool] = None
    serves_breakfast: Optional[bool] = None
    serves_brunch: Optional[bool] = None
    serves_lunch: Optional[bool] = None
    serves_dinner: Optional[bool] = None
    serves_beer: Optional[bool] = None
    serves_wine: Optional[bool] = None
    serves_cocktails: Optional[bool] = None
    serves_vegetarian_food: Optional[bool] = None
    allows_dogs: Optional[bool] = None
    restroom: Optional[bool] = None
    menu_for_children: Optional[bool] = None
    accessibility_options: Optional[Dict[str, Any]] = None
    payment_options: Optional[Dict[str, Any]] = None
    parking_options: Optional[Dict[str, Any]] = None

    def merge_fields(self, fields: Dict[str, Any]) -> "Place":
        """Return a copy with supplementary fields applied.

        A supplementary value only overrides the base value when it is present;
        unknown keys are ignored.
        """
        updates = {k: v for k, v in fields.items() if k in AMENITY_ATTRS and v is not None}
        extra_photos = [p for p in (fields.get("photos") or []) if p and p not in self.photos]
        if extra_photos:
            updates["photos"] = (list(self.photos) + extra_photos)[:MAX_PHOTOS]
        if not updates:
            return self
        return dataclasses.replace(self, **updates)


@dataclass
class Destination:
    label: str
    lat: float
    lon: float
    bounds: Optional[Bounds] = None
    types: list[str] = field(default_factory=list)
    place_id: Optional[str] = None

    @property
    def key(self) -> str:
        """Stable key used for suppression bookkeeping and cache keys."""
        return self.place_id or self.label.strip().lower()


@dataclass
class CircleRestriction:
    lat: float
    lon: float
    radius_m: float


@dataclass
class RectRestriction:
    bounds: Bounds


@dataclass
class ScoredCandidate:
    place: Place
    score: float
    matched_reasons: list[str] = field(default_factory=list)
    distance_km: Optional[float] = None
    category_overlap: Optional[str] = None
    score_breakdown: Dict[str, float] = field(default_factory=dict)
    previously_seen: bool = False
    # filled in for displayed candidates only
    explanation: Optional[str] = None
    image_analysis: Optional[str] = None


@dataclass
class SearchResultSet:
    displayed: List[ScoredCandidate]
    all: List[ScoredCandidate]
    has_more: bool = False
    continuation_token: Optional[str] = None
    cache_key: Optional[str] = None


@dataclass
class SearchRequest:
    references: List[Place]
    destination: Destination
    toggles: Dict[str, bool] = field(default_factory=dict)
    free_text: Optional[str] = None
    free_text_keywords: List[str] = field(default_factory=list)
    override_keywords: Optional[List[str]] = None
    refinement: bool = False
    continuation_token: Optional[str] = None
    # hard pre-filter: never scored
    exclude_ids: set[str] = field(default_factory=set)
    # soft penalty: scored at half weight
    seen_ids: set[str] = field(default_factory=set)
    identity: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.references:
            raise ValueError("at least one reference place is required")

    @property
    def source(self) -> Place:
        return self.references[0]


@dataclass
class SeenRecord:
    identity: str
    candidate_id: str
    destination: str
    name: Optional[str] = None
    first_seen: float = 0.0
    last_seen: float = 0.0
    view_count: int = 0
    is_saved: bool = False
