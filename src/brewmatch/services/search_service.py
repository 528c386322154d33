from __future__ import annotations

import asyncio
import dataclasses
from typing import List, Optional, Set

from loguru import logger

from brewmatch.config import Configuration
from brewmatch.models import ScoredCandidate, SearchRequest, SearchResultSet, SeenRecord
from brewmatch.services.image_analysis import ImageAnalyzer
from brewmatch.services.orchestrator import PlacesProvider, SearchOrchestrator
from brewmatch.services.preferences import FreeTextParser
from brewmatch.services.reasoner import ExplanationGenerator, pad
from brewmatch.services.search_state import SearchStateCache, search_cache_key
from brewmatch.services.seen_store import InMemorySeenStore, SeenStore


class SearchService:
    """Search API: ties the orchestrator to the seen store, state cache and enrichment."""

    def __init__(
        self,
        cfg: Configuration,
        places: PlacesProvider,
        *,
        seen_store: Optional[SeenStore] = None,
        state_cache: Optional[SearchStateCache] = None,
        explainer: Optional[ExplanationGenerator] = None,
        image_analyzer: Optional[ImageAnalyzer] = None,
        free_text_parser: Optional[FreeTextParser] = None,
    ) -> None:
        self.cfg = cfg
        self.places = places
        self.orchestrator = SearchOrchestrator(cfg, places)
        self.seen_store: SeenStore = seen_store or InMemorySeenStore()
        self.state_cache = state_cache or SearchStateCache(cfg.search_state_max, cfg.search_state_ttl)
        self.explainer = explainer or ExplanationGenerator(cfg)
        self.image_analyzer = image_analyzer or ImageAnalyzer(cfg)
        self.free_text_parser = free_text_parser or FreeTextParser(cfg)
        self._tasks: Set[asyncio.Task] = set()

    async def search(self, request: SearchRequest) -> SearchResultSet:
        if request.free_text and not request.free_text_keywords:
            keywords = await asyncio.to_thread(self.free_text_parser.parse, request.free_text)
            request = dataclasses.replace(request, free_text_keywords=keywords)

        destination_key = request.destination.key
        seen = await self._seen_ids(request.identity, destination_key)
        if seen:
            request = dataclasses.replace(request, seen_ids=set(request.seen_ids) | seen)

        result = await self.orchestrator.search(request)
        await self._enrich_displayed(request, result.displayed)

        key = search_cache_key(
            [r.id for r in request.references],
            destination_key,
            request.toggles,
            request.free_text,
        )
        self.state_cache.store(key, result, request)
        result.cache_key = key

        self._record_views(request.identity, destination_key, result.displayed)
        logger.info(
            "search done: {} ranked, {} displayed, has_more={}",
            len(result.all),
            len(result.displayed),
            result.has_more,
        )
        return result

    def get_next_batch(self, cache_key: str, batch_size: Optional[int] = None) -> Optional[List[ScoredCandidate]]:
        """Next cached entries not shown yet; None means the caller must query the provider."""
        return self.state_cache.next_batch(cache_key, batch_size or self.cfg.batch_size)

    async def load_more(self, cache_key: str) -> Optional[SearchResultSet]:
        """The next batch for a cached search; ``displayed`` and ``all`` both hold just that batch."""
        state = self.state_cache.get(cache_key)
        if state is None:
            return None
        request = state.request

        batch = self.get_next_batch(cache_key)
        if batch is None and state.continuation_token and request is not None:
            logger.info("cache exhausted for {}, fetching next provider page", cache_key)
            seen = await self._seen_ids(request.identity, request.destination.key)
            page_request = dataclasses.replace(
                request,
                continuation_token=state.continuation_token,
                exclude_ids=set(request.exclude_ids) | set(state.shown_ids),
                seen_ids=set(request.seen_ids) | seen,
            )
            page = await self.orchestrator.search(page_request)
            state = self.state_cache.extend(cache_key, page) or state
            batch = self.get_next_batch(cache_key)

        batch = batch or []
        if batch and request is not None:
            await self._enrich_displayed(request, batch)
            self._record_views(request.identity, request.destination.key, batch)

        return SearchResultSet(
            displayed=batch,
            all=list(batch),
            has_more=bool(state.unseen()) or state.has_more,
            continuation_token=state.continuation_token,
            cache_key=cache_key,
        )

    def record_view(
        self,
        identity: str,
        candidate_id: str,
        destination: str,
        name: Optional[str] = None,
    ) -> SeenRecord:
        return self.seen_store.record_view(identity, candidate_id, destination, name)

    def mark_saved(self, identity: str, candidate_id: str, saved: bool = True) -> SeenRecord:
        return self.seen_store.mark_saved(identity, candidate_id, saved)

    async def drain(self) -> None:
        """Wait for pending background bookkeeping."""
        while self._tasks:
            pending = list(self._tasks)
            await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.difference_update(pending)

    async def _seen_ids(self, identity: Optional[str], destination: str) -> Set[str]:
        if not identity:
            return set()
        try:
            return set(await asyncio.to_thread(self.seen_store.unsaved_seen_ids, identity, destination))
        except Exception as exc:
            logger.warning("seen store read failed, treating as nothing seen: {}", exc)
            return set()

    async def _enrich_displayed(self, request: SearchRequest, displayed: List[ScoredCandidate]) -> None:
        if not displayed:
            return

        async def analyze(cand: ScoredCandidate) -> None:
            if not cand.place.photos:
                return
            url = self.places.photo_url(cand.place.photos[0])
            cand.image_analysis = await self.image_analyzer.analyze_with_timeout(url)

        await asyncio.gather(*(analyze(c) for c in displayed))

        try:
            explanations = await asyncio.to_thread(
                self.explainer.explain_batch,
                request.source,
                displayed,
                request.destination.label,
                request.toggles,
            )
        except Exception as exc:
            logger.warning("explanation generation failed: {}", exc)
            explanations = []
        for cand, text in zip(displayed, pad(explanations, len(displayed))):
            cand.explanation = text

    def _record_views(self, identity: Optional[str], destination: str, shown: List[ScoredCandidate]) -> None:
        if not identity:
            return
        for cand in shown:
            self._spawn(self._record_view(identity, cand.place.id, destination, cand.place.name))

    async def _record_view(self, identity: str, candidate_id: str, destination: str, name: str) -> None:
        try:
            await asyncio.to_thread(self.seen_store.record_view, identity, candidate_id, destination, name)
        except Exception as exc:
            logger.warning("failed to record view of {} for {}: {}", candidate_id, identity, exc)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
