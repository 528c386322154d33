from __future__ import annotations

from brewmatch.models import ScoredCandidate, SearchResultSet
from brewmatch.services.search_state import SearchStateCache, search_cache_key

from fakes import make_place


def _ranked(*ids: str) -> list[ScoredCandidate]:
    return [ScoredCandidate(place=make_place(pid), score=float(100 - i)) for i, pid in enumerate(ids)]


def _result(ranked: list[ScoredCandidate], shown: int = 2, token=None) -> SearchResultSet:
    return SearchResultSet(displayed=ranked[:shown], all=ranked, has_more=bool(token), continuation_token=token)


def test_cache_key_ignores_ordering() -> None:
    k1 = search_cache_key(["b", "a"], "seattle", {"cozy": True, "allowsDogs": True, "nitro": False}, "quiet")
    k2 = search_cache_key(["a", "b"], "seattle", {"allowsDogs": True, "cozy": True}, "quiet")
    assert k1 == k2
    assert k1 != search_cache_key(["a", "b"], "portland", {"allowsDogs": True, "cozy": True}, "quiet")
    assert k1 != search_cache_key(["a", "b"], "seattle", {"allowsDogs": True}, "quiet")
    assert k1 != search_cache_key(["a", "b"], "seattle", {"allowsDogs": True, "cozy": True}, None)


def test_next_batch_serves_unshown_entries() -> None:
    cache = SearchStateCache()
    cache.store("k", _result(_ranked("a", "b", "c", "d", "e")))

    batch = cache.next_batch("k", 2)
    assert [c.place.id for c in batch] == ["c", "d"]
    batch = cache.next_batch("k", 2)
    assert [c.place.id for c in batch] == ["e"]
    assert cache.next_batch("k", 2) is None
    assert cache.get("k").shown_ids == ["a", "b", "c", "d", "e"]


def test_next_batch_missing_state() -> None:
    assert SearchStateCache().next_batch("missing", 5) is None


def test_extend_appends_new_page_without_duplicates() -> None:
    cache = SearchStateCache()
    cache.store("k", _result(_ranked("a", "b"), token="page-2"))
    state = cache.extend("k", _result(_ranked("b", "c", "d"), token=None))

    assert [c.place.id for c in state.all] == ["a", "b", "c", "d"]
    assert state.continuation_token is None
    assert not state.has_more
    assert [c.place.id for c in cache.next_batch("k", 5)] == ["c", "d"]


def test_state_expires() -> None:
    now = [0.0]
    cache = SearchStateCache(ttl_sec=10, clock=lambda: now[0])
    cache.store("k", _result(_ranked("a", "b", "c")))
    now[0] = 11.0
    assert cache.get("k") is None
    assert cache.next_batch("k", 5) is None
