from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from loguru import logger

from brewmatch.config import Configuration
from brewmatch.models import AMENITY_FIELDS
from brewmatch.services.llm import LLMError, complete, extract_json


@dataclass(frozen=True)
class PreferenceDefinition:
    id: str
    label: str
    category: str
    field: Optional[str] = None  # Place attribute rewarded when truthy
    query_keywords: tuple[str, ...] = ()


def _pref(
    id: str,
    label: str,
    category: str,
    field: Optional[str] = None,
    keywords: Iterable[str] = (),
) -> PreferenceDefinition:
    return PreferenceDefinition(id=id, label=label, category=category, field=field, query_keywords=tuple(keywords))


# Registry order is significant: it fixes the order of preference reasons and query terms.
PREFERENCES: Dict[str, PreferenceDefinition] = {
    p.id: p
    for p in [
        # ambiance
        _pref("cozy", "Cozy", "ambiance", None, ["cozy", "intimate", "warm"]),
        _pref("minimalist", "Minimalist", "ambiance", None, ["minimalist", "modern", "clean design"]),
        _pref("outdoorSeating", "Outdoor Seating", "ambiance", "outdoor_seating", ["outdoor", "patio", "terrace"]),
        _pref("liveMusic", "Live Music", "ambiance", "live_music", ["live music", "acoustic", "performance"]),
        _pref("sportsFriendly", "Sports Friendly", "ambiance", "good_for_watching_sports", ["sports", "game", "watch"]),
        _pref("instagrammable", "Instagrammable", "ambiance", None, ["aesthetic", "photogenic", "instagram", "beautiful"]),
        # coffee specialty
        _pref("roastery", "Roastery", "coffee-specialty", None, ["roastery", "roaster", "roasts own"]),
        _pref("lightRoast", "Light Roast / Filter-First", "coffee-specialty", None, ["light roast", "filter", "specialty coffee", "third wave"]),
        _pref("singleOrigin", "Single Origin", "coffee-specialty", None, ["single origin", "origin", "traceable"]),
        _pref("pourOver", "Pour Over", "coffee-specialty", None, ["pour over", "v60", "chemex", "manual brew"]),
        _pref("coldBrew", "Cold Brew", "coffee-specialty", None, ["cold brew", "iced coffee"]),
        _pref("nitro", "Nitro Coffee", "coffee-specialty", None, ["nitro", "nitrogen", "nitro coffee"]),
        # food & drink
        _pref("brunch", "Brunch", "food-drink", "serves_brunch", ["brunch"]),
        _pref("servesBreakfast", "Breakfast", "food-drink", "serves_breakfast", ["breakfast", "morning"]),
        _pref("servesLunch", "Lunch", "food-drink", "serves_lunch", ["lunch"]),
        _pref("servesDinner", "Dinner", "food-drink", "serves_dinner", ["dinner", "evening"]),
        _pref("servesVegetarian", "Vegetarian Options", "food-drink", "serves_vegetarian_food", ["vegetarian", "vegan"]),
        _pref("oatMilk", "Oat Milk", "food-drink", "serves_vegetarian_food", ["oat milk", "plant milk", "dairy free"]),
        _pref("bakedGoods", "Baked Goods", "food-drink", None, ["pastries", "baked goods", "croissant", "cake"]),
        _pref("servesBeer", "Serves Beer", "food-drink", "serves_beer", ["beer", "craft beer"]),
        _pref("servesWine", "Serves Wine", "food-drink", "serves_wine", ["wine"]),
        _pref("servesCocktails", "Serves Cocktails", "food-drink", "serves_cocktails", ["cocktails", "mixed drinks"]),
        # amenities
        _pref("laptopFriendly", "Laptop Friendly", "amenities", "restroom", ["workspace", "wifi", "laptop friendly", "remote work", "coworking"]),
        _pref("allowsDogs", "Dog Friendly", "amenities", "allows_dogs", ["dog friendly", "pet friendly"]),
        _pref("takeout", "Takeout Available", "amenities", "takeout", ["takeout", "to go"]),
        _pref("delivery", "Delivery", "amenities", "delivery", ["delivery"]),
        _pref("dineIn", "Dine In", "amenities", "dine_in", ["dine in", "sit down"]),
        _pref("reservable", "Accepts Reservations", "amenities", "reservable", ["reservation", "book", "booking"]),
        _pref("goodForGroups", "Good for Groups", "amenities", "good_for_groups", ["groups", "party", "gathering"]),
        _pref("goodForChildren", "Kid Friendly", "amenities", "good_for_children", ["kids", "children", "family"]),
        _pref("menuForChildren", "Kids' Menu", "amenities", "menu_for_children", ["kids menu", "children menu"]),
        _pref("parking", "Parking Available", "amenities", "parking_options", ["parking", "car park"]),
        _pref("restroom", "Restroom", "amenities", "restroom", ["restroom", "bathroom"]),
        # accessibility
        _pref("accessibleFriendly", "Wheelchair Accessible", "accessibility", "accessibility_options", ["accessible", "wheelchair", "disability"]),
        # timing
        _pref("nightOwl", "Night Owl", "timing", None, ["late night", "open late", "night"]),
    ]
}

_ATTR_TO_FIELD = {attr: name for name, attr in AMENITY_FIELDS.items()}

# Fields read by the unconditional amenity bonuses; always worth fetching.
ALWAYS_FETCH_FIELDS = ("servesCoffee", "outdoorSeating", "liveMusic", "goodForGroups", "servesBreakfast", "servesBrunch")

# word hint in free text / keywords -> provider fields worth fetching
TEXT_FIELD_HINTS: Dict[str, tuple[str, ...]] = {
    "dine": ("dineIn",),
    "eat in": ("dineIn",),
    "sit down": ("dineIn",),
    "takeout": ("takeout",),
    "take out": ("takeout",),
    "to go": ("takeout",),
    "to-go": ("takeout",),
    "deliver": ("delivery",),
    "reserv": ("reservable",),
    "book": ("reservable",),
    "group": ("goodForGroups",),
    "party": ("goodForGroups",),
    "meeting": ("goodForGroups",),
    "child": ("goodForChildren", "menuForChildren"),
    "kid": ("goodForChildren", "menuForChildren"),
    "family": ("goodForChildren", "menuForChildren"),
    "sport": ("goodForWatchingSports",),
    "game": ("goodForWatchingSports",),
    "music": ("liveMusic",),
    "band": ("liveMusic",),
    "breakfast": ("servesBreakfast",),
    "morning": ("servesBreakfast",),
    "brunch": ("servesBrunch", "servesBreakfast"),
    "lunch": ("servesLunch",),
    "dinner": ("servesDinner",),
    "evening": ("servesDinner",),
    "beer": ("servesBeer", "servesWine"),
    "alcohol": ("servesBeer", "servesWine"),
    "wine": ("servesWine",),
    "cocktail": ("servesCocktails",),
    "vegetarian": ("servesVegetarianFood",),
    "vegan": ("servesVegetarianFood",),
    "plant": ("servesVegetarianFood",),
    "dog": ("allowsDogs",),
    "pet": ("allowsDogs",),
    "wheelchair": ("accessibilityOptions",),
    "accessib": ("accessibilityOptions",),
    "parking": ("parkingOptions",),
    "payment": ("paymentOptions",),
    "card": ("paymentOptions",),
    "cash": ("paymentOptions",),
    "restroom": ("restroom",),
    "bathroom": ("restroom",),
}


def get_preference(preference_id: str) -> Optional[PreferenceDefinition]:
    return PREFERENCES.get(preference_id)


def active_preference_ids(toggles: Mapping[str, bool]) -> List[str]:
    return sorted(k for k, v in toggles.items() if v is True)


def active_preferences(toggles: Mapping[str, bool]) -> List[PreferenceDefinition]:
    """Registered preferences switched on, in registry order. Unknown ids are skipped."""
    return [p for p in PREFERENCES.values() if toggles.get(p.id) is True]


def preference_keywords(toggles: Mapping[str, bool]) -> List[str]:
    keywords: list[str] = []
    for pref in active_preferences(toggles):
        keywords.extend(pref.query_keywords)
    return list(dict.fromkeys(keywords))


def relevant_fields(
    toggles: Mapping[str, bool],
    keywords: Iterable[str] = (),
    free_text: str = "",
) -> List[str]:
    """Provider field names worth fetching for this search, to keep per-candidate cost down."""
    fields: dict[str, None] = dict.fromkeys(ALWAYS_FETCH_FIELDS)

    for pref in active_preferences(toggles):
        if pref.field and pref.field in _ATTR_TO_FIELD:
            fields.setdefault(_ATTR_TO_FIELD[pref.field])

    query_text = f"{' '.join(keywords)} {free_text or ''}".lower()
    for hint, hinted in TEXT_FIELD_HINTS.items():
        if hint in query_text:
            for name in hinted:
                fields.setdefault(name)
    return list(fields)


FREE_TEXT_PROMPT = (
    "You extract search keywords for finding cafes.\n"
    "Given the user's free-form text describing what they want in a cafe (in any language), "
    "return 3-5 relevant English search keywords useful for finding matching cafes on a map.\n"
    "Focus on atmosphere (cozy, quiet, bright), amenities (outdoor seating, wifi), "
    "food/drink (pastries, specialty coffee) and style (modern, rustic, minimalist).\n"
    'Return ONLY a JSON array of strings. Example: ["outdoor seating", "pastries", "quiet"]'
)

_SPLIT_PATTERN = re.compile(r",|;|\band\b|\bwith\b", re.I)


def heuristic_keywords(text: str, limit: int = 5) -> List[str]:
    parts = [p.strip(" .!?").lower() for p in _SPLIT_PATTERN.split(text or "")]
    return list(dict.fromkeys(p for p in parts if p))[:limit]


class FreeTextParser:
    """Turns a free-text wish ("quiet spot with pastries") into search keywords."""

    def __init__(self, cfg: Configuration) -> None:
        self.cfg = cfg

    def parse(self, text: str) -> List[str]:
        text = (text or "").strip()
        if not text:
            return []
        if not self.cfg.llm_enabled:
            return heuristic_keywords(text)

        try:
            raw = complete(self.cfg, FREE_TEXT_PROMPT, text, name="FreeTextParser", temperature=0.3)
        except LLMError as exc:
            logger.warning("free text parsing failed, using heuristic keywords: {}", exc)
            return heuristic_keywords(text)

        data = extract_json(raw)
        if isinstance(data, dict):
            data = next((v for v in data.values() if isinstance(v, list)), None)
        if not isinstance(data, list):
            logger.warning("free text parser returned no keyword array: {!r}", raw[:200])
            return heuristic_keywords(text)
        keywords = [str(k).strip().lower() for k in data if isinstance(k, str) and k.strip()]
        return list(dict.fromkeys(keywords))[:5]
