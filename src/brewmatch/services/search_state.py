from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Mapping, Optional

from brewmatch.models import ScoredCandidate, SearchRequest, SearchResultSet
from brewmatch.services.cache import TTLCache
from brewmatch.services.preferences import active_preference_ids


def search_cache_key(
    reference_ids: Iterable[str],
    destination: str,
    toggles: Mapping[str, bool],
    free_text: Optional[str] = None,
) -> str:
    """Deterministic key for a search; ordering of ids and toggles does not matter."""
    refs = ",".join(sorted(reference_ids))
    prefs = ",".join(active_preference_ids(toggles))
    return f"{refs}|{destination}|{prefs}|{(free_text or '').strip()}"


@dataclass
class SearchState:
    key: str
    all: List[ScoredCandidate]
    shown_ids: List[str] = field(default_factory=list)
    has_more: bool = False
    continuation_token: Optional[str] = None
    request: Optional[SearchRequest] = None

    def unseen(self) -> List[ScoredCandidate]:
        shown = set(self.shown_ids)
        return [c for c in self.all if c.place.id not in shown]


class SearchStateCache:
    def __init__(self, max_entries: int = 500, ttl_sec: float = 86400, clock: Callable[[], float] = time.time) -> None:
        self._cache: TTLCache[SearchState] = TTLCache(max_entries, ttl_sec, clock=clock)

    def get(self, key: str) -> Optional[SearchState]:
        return self._cache.get(key)

    def store(self, key: str, result: SearchResultSet, request: Optional[SearchRequest] = None) -> SearchState:
        state = SearchState(
            key=key,
            all=list(result.all),
            shown_ids=[c.place.id for c in result.displayed],
            has_more=result.has_more,
            continuation_token=result.continuation_token,
            request=request,
        )
        self._cache.set(key, state)
        return state

    def next_batch(self, key: str, size: int) -> Optional[List[ScoredCandidate]]:
        """Next ``size`` entries of the ranked set not shown yet, or None when there are none."""
        state = self._cache.get(key)
        if state is None:
            return None
        batch = state.unseen()[:size]
        if not batch:
            return None
        state.shown_ids.extend(c.place.id for c in batch)
        return batch

    def extend(self, key: str, result: SearchResultSet) -> Optional[SearchState]:
        """Append a freshly fetched page to the cached ranked set."""
        state = self._cache.get(key)
        if state is None:
            return None
        known = {c.place.id for c in state.all}
        state.all.extend(c for c in result.all if c.place.id not in known)
        state.has_more = result.has_more
        state.continuation_token = result.continuation_token
        self._cache.set(key, state)
        return state
