from __future__ import annotations

import dataclasses
from typing import AbstractSet, List, Sequence

from brewmatch.models import ScoredCandidate

SEEN_PENALTY = 0.5


def rank(candidates: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
    """Sort by descending score; ties keep their input order."""
    return sorted(candidates, key=lambda c: -c.score)


def apply_seen_penalty(
    candidates: Sequence[ScoredCandidate],
    seen_ids: AbstractSet[str],
    penalty: float = SEEN_PENALTY,
) -> List[ScoredCandidate]:
    """Halve the score of already-seen candidates and re-rank.

    Nothing is removed: a destination with few cafes still returns results.
    """
    adjusted: list[ScoredCandidate] = []
    for cand in candidates:
        if cand.place.id in seen_ids:
            breakdown = {**cand.score_breakdown, "seen_penalty": cand.score * (penalty - 1.0)}
            cand = dataclasses.replace(
                cand,
                score=cand.score * penalty,
                previously_seen=True,
                score_breakdown=breakdown,
            )
        adjusted.append(cand)
    return rank(adjusted)
