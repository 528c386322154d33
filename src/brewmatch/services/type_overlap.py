from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

from brewmatch.models import Place

# Labels too broad to signal similarity.
GENERIC_TYPES = frozenset({"point_of_interest", "establishment", "food", "store", "place_of_worship"})

EXACT_PRIMARY = 6.0
REF_PRIMARY_IN_CANDIDATE = 5.0
CANDIDATE_PRIMARY_IN_REF = 4.0
SHARED_TYPE = 0.5
SHARED_TYPE_CAP = 3.0
MAX_SCORE = 10.0


@dataclass
class TypeOverlap:
    score: float
    matched_names: List[str] = field(default_factory=list)


def _reference_score(candidate: Place, reference: Place) -> float:
    cand_types = set(candidate.types or [])
    ref_types = set(reference.types or [])
    score = 0.0

    if candidate.primary_type and candidate.primary_type == reference.primary_type:
        score += EXACT_PRIMARY
    elif reference.primary_type and reference.primary_type in cand_types:
        score += REF_PRIMARY_IN_CANDIDATE
    elif candidate.primary_type and candidate.primary_type in ref_types:
        score += CANDIDATE_PRIMARY_IN_REF

    shared = (cand_types & ref_types) - GENERIC_TYPES
    score += min(len(shared) * SHARED_TYPE, SHARED_TYPE_CAP)
    return score


def type_overlap_score(candidate: Place, references: Sequence[Place]) -> TypeOverlap:
    """Category similarity of ``candidate`` to every reference, normalized to 0..10.

    Each reference contributes up to 6 points for primary-category agreement
    plus a capped bonus for shared non-generic labels. The sum is divided by
    ``len(references) * 6`` so the result does not grow with the number of
    references.
    """
    if not references:
        return TypeOverlap(score=0.0)

    total = 0.0
    matched: list[str] = []
    for ref in references:
        s = _reference_score(candidate, ref)
        if s > 0:
            total += s
            matched.append(ref.name)

    normalized = min(total / (len(references) * EXACT_PRIMARY) * MAX_SCORE, MAX_SCORE)
    return TypeOverlap(score=normalized, matched_names=matched)
