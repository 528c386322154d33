from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from brewmatch.models import Place
from brewmatch.services.preferences import active_preferences
from brewmatch.services.type_overlap import type_overlap_score

PRICE_MATCH_BONUS = 2.0
PHOTO_BONUS = 0.5
PREFERENCE_BONUS = 1.5
REFINEMENT_BONUS = 3.0

# Generically desirable amenities, rewarded regardless of toggles.
AMENITY_BONUSES = (
    ("outdoor_seating", 1.0, "Outdoor seating"),
    ("live_music", 1.0, "Live music"),
    ("good_for_groups", 0.5, "Good for groups"),
)
ALL_DAY_DINING_BONUS = 0.5


@dataclass
class CandidateScore:
    score: float
    reasons: List[str] = field(default_factory=list)
    narrative: Optional[str] = None
    breakdown: Dict[str, float] = field(default_factory=dict)


def is_truthy_field(value: Any) -> bool:
    """True for a boolean True, or a structured value holding at least one positive entry."""
    if isinstance(value, bool):
        return value
    if isinstance(value, Mapping):
        return any(v is True or (isinstance(v, (Mapping, list)) and len(v) > 0) for v in value.values())
    if isinstance(value, (list, tuple, set)):
        return len(value) > 0
    return False


def _type_match_reason(matched: Sequence[str], total: int) -> str:
    if total == 1:
        return f"Type match: {matched[0]}"
    if len(matched) == total:
        return f"Type match: all {total} favorites"
    return f"Type match: {len(matched)} of {total} favorites"


def _refinement_hits(candidate: Place, keywords: Sequence[str]) -> List[str]:
    types = candidate.types or []
    haystack = " ".join([candidate.name or "", *types, *(t.replace("_", " ") for t in types)]).lower()
    hits: list[str] = []
    for kw in keywords:
        needle = (kw or "").strip().lower()
        if needle and needle in haystack and needle not in hits:
            hits.append(needle)
    return hits


def score_candidate(
    candidate: Place,
    source: Place,
    toggles: Mapping[str, bool],
    keywords: Sequence[str],
    refinement: bool = False,
    references: Optional[Sequence[Place]] = None,
) -> CandidateScore:
    """Score one candidate against the reference places.

    Contributions are applied in a fixed order and reasons are appended in
    that same order, so equal inputs always give equal output.
    """
    result = CandidateScore(score=0.0)
    refs = list(references) if references else [source]

    def add(key: str, amount: float, reason: Optional[str] = None) -> None:
        result.score += amount
        result.breakdown[key] = result.breakdown.get(key, 0.0) + amount
        if reason and reason not in result.reasons:
            result.reasons.append(reason)

    # 1. rating
    if candidate.rating is not None:
        add("rating", candidate.rating / 5.0 * 10.0)

    # 2. review volume
    if candidate.user_rating_count and candidate.user_rating_count > 0:
        add("reviews", math.log10(candidate.user_rating_count))

    # 3. category overlap
    overlap = type_overlap_score(candidate, refs)
    if overlap.score > 0:
        add("type_overlap", overlap.score, _type_match_reason(overlap.matched_names, len(refs)))
        result.narrative = f"Matches {', '.join(overlap.matched_names)}"

    # 4. price proximity
    if (
        source.price_level is not None
        and candidate.price_level is not None
        and abs(source.price_level - candidate.price_level) <= 1
    ):
        add("price", PRICE_MATCH_BONUS, "Similar price")

    # 5. listing completeness
    if candidate.photos:
        add("photos", PHOTO_BONUS)

    # 6. fixed amenity bonuses
    for attr, bonus, label in AMENITY_BONUSES:
        if getattr(candidate, attr) is True:
            add("amenities", bonus, label)
    if candidate.serves_breakfast is True or candidate.serves_brunch is True:
        add("amenities", ALL_DAY_DINING_BONUS, "All-day dining")

    # 7. toggled preferences bound to a field
    for pref in active_preferences(toggles):
        if pref.field and is_truthy_field(getattr(candidate, pref.field, None)):
            add("preferences", PREFERENCE_BONUS, pref.label)

    # 8. refinement steering
    if refinement:
        for kw in _refinement_hits(candidate, keywords):
            add("refinement", REFINEMENT_BONUS, f'Matches "{kw}"')

    return result
