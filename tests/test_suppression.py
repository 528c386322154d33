from __future__ import annotations

from brewmatch.models import ScoredCandidate
from brewmatch.services.suppression import apply_seen_penalty, rank

from fakes import make_place


def _scored(pid: str, score: float) -> ScoredCandidate:
    return ScoredCandidate(place=make_place(pid), score=score, score_breakdown={"rating": score})


def test_seen_candidates_are_halved_not_removed() -> None:
    ranked = [_scored("a", 20.0), _scored("b", 15.0), _scored("c", 12.0)]
    out = apply_seen_penalty(ranked, {"a"})

    assert [c.place.id for c in out] == ["b", "c", "a"]
    by_id = {c.place.id: c for c in out}
    assert by_id["a"].score == 10.0
    assert by_id["a"].previously_seen
    assert by_id["a"].score_breakdown["seen_penalty"] == -10.0
    assert by_id["b"].score == 15.0
    assert not by_id["b"].previously_seen


def test_everything_seen_still_returns_all() -> None:
    ranked = [_scored("a", 4.0), _scored("b", 2.0)]
    out = apply_seen_penalty(ranked, {"a", "b"})
    assert [c.score for c in out] == [2.0, 1.0]


def test_input_is_not_mutated() -> None:
    before = _scored("a", 8.0)
    apply_seen_penalty([before], {"a"})
    assert before.score == 8.0
    assert not before.previously_seen


def test_rank_is_stable_on_ties() -> None:
    items = [_scored("x", 5.0), _scored("y", 7.0), _scored("z", 5.0), _scored("w", 7.0)]
    assert [c.place.id for c in rank(items)] == ["y", "w", "x", "z"]
