from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from brewmatch.config import Configuration
from brewmatch.models import CircleRestriction, Destination, Place, RectRestriction
from brewmatch.services.bbox_builder import diagonal_km, expand_bbox_from_center
from brewmatch.services.preferences import preference_keywords
from brewmatch.services.type_overlap import GENERIC_TYPES

# Destination types that denote an administrative area rather than a single venue.
AREA_TYPES = frozenset(
    {
        "locality",
        "sublocality",
        "sublocality_level_1",
        "administrative_area_level_1",
        "administrative_area_level_2",
        "country",
        "city",
        "continent",
        "postal_code",
        "neighborhood",
        "colloquial_area",
    }
)

DEFAULT_KEYWORDS = ("cafe", "coffee", "specialty coffee")

# Already implied by the included type filter.
_REDUNDANT_CATEGORIES = frozenset({"cafe", "coffee_shop"})

MAX_BASE_TERMS = 3
MAX_FREE_TEXT_TERMS = 2
MAX_CATEGORY_TERMS = 3
MAX_PREFERENCE_TERMS = 2
MAX_QUERY_TERMS = 5

Restriction = Union[CircleRestriction, RectRestriction]


@dataclass
class BuiltQuery:
    # base terms, then category terms, then preference terms
    keywords: List[str]
    text_query: str
    restriction: Restriction
    is_area: bool
    category_terms: List[str] = field(default_factory=list)
    preference_terms: List[str] = field(default_factory=list)


def _unique(items: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        term = (item or "").strip()
        if term and term.lower() not in seen:
            seen.add(term.lower())
            out.append(term)
    return out


def base_keywords(
    override_keywords: Optional[Sequence[str]] = None,
    free_text_keywords: Sequence[str] = (),
) -> List[str]:
    """Override keywords (or the defaults) followed by up to two free-text keywords."""
    base = _unique(override_keywords or ())[:MAX_BASE_TERMS] or list(DEFAULT_KEYWORDS)
    extra = _unique(free_text_keywords)[:MAX_FREE_TEXT_TERMS]
    return _unique([*base, *extra])


def category_terms(references: Sequence[Place], limit: int = MAX_CATEGORY_TERMS) -> List[str]:
    raw: list[str] = []
    for ref in references:
        if ref.primary_type:
            raw.append(ref.primary_type)
        raw.extend(ref.types or [])
    terms = [
        t.replace("_", " ")
        for t in raw
        if t and t not in GENERIC_TYPES and t not in _REDUNDANT_CATEGORIES
    ]
    return _unique(terms)[:limit]


def build_text_query(
    keywords: Sequence[str],
    categories: Sequence[str] = (),
    preferences: Sequence[str] = (),
) -> str:
    """Collapse the term lists into at most five unique terms.

    Two base keywords and two preference terms go first; category terms
    fill any remaining slots.
    """
    terms = _unique([*keywords[:2], *preferences[:MAX_PREFERENCE_TERMS]])
    for term in _unique([*categories, *keywords[2:]]):
        if len(terms) >= MAX_QUERY_TERMS:
            break
        if term.lower() not in {t.lower() for t in terms}:
            terms.append(term)
    return " ".join(terms[:MAX_QUERY_TERMS])


def is_area_destination(destination: Destination) -> bool:
    return any(t in AREA_TYPES for t in destination.types or [])


def build_location_restriction(destination: Destination, cfg: Configuration) -> tuple[Restriction, bool]:
    """Pick the geographic constraint for ``destination``.

    Areas search their own bounds, degraded to a box around the center when
    the area is too large. Venues and addresses search a circle sized from
    their viewport.
    """
    max_radius_km = cfg.max_search_radius_km
    is_area = is_area_destination(destination)
    bounds = destination.bounds

    if is_area and bounds is not None:
        if diagonal_km(bounds) > cfg.max_area_diagonal_km:
            return RectRestriction(expand_bbox_from_center(destination.lat, destination.lon, max_radius_km)), True
        return RectRestriction(bounds), True

    if is_area:
        # area without a viewport; search the widest circle allowed
        return CircleRestriction(destination.lat, destination.lon, max_radius_km * 1000.0), True

    radius_km = max_radius_km
    if bounds is not None:
        radius_km = min(diagonal_km(bounds) / 2.0, max_radius_km)
    return CircleRestriction(destination.lat, destination.lon, radius_km * 1000.0), False


def build_query(
    references: Sequence[Place],
    destination: Destination,
    toggles: Mapping[str, bool],
    keywords: Sequence[str],
    cfg: Configuration,
) -> BuiltQuery:
    categories = category_terms(references)
    prefs = preference_keywords(toggles)[:MAX_PREFERENCE_TERMS]
    restriction, is_area = build_location_restriction(destination, cfg)
    return BuiltQuery(
        keywords=_unique([*keywords, *categories, *prefs]),
        text_query=build_text_query(keywords, categories, prefs),
        restriction=restriction,
        is_area=is_area,
        category_terms=categories,
        preference_terms=prefs,
    )
