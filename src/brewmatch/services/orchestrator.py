from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from loguru import logger

from brewmatch.config import Configuration
from brewmatch.models import Destination, Place, ScoredCandidate, SearchRequest, SearchResultSet
from brewmatch.services.google_places import Restriction
from brewmatch.services.preferences import relevant_fields
from brewmatch.services.query_builder import base_keywords, build_query
from brewmatch.services.ranking import score_candidate
from brewmatch.services.suppression import apply_seen_penalty
from brewmatch.utils import haversine_km


class PlacesProvider(Protocol):
    def search_text(
        self,
        text_query: str,
        restriction: Restriction,
        *,
        page_token: Optional[str] = None,
        included_type: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> Tuple[List[Place], Optional[str]]: ...

    def fetch_fields(self, place_id: str, fields: Sequence[str]) -> Dict[str, Any]: ...

    def reverse_geocode(self, lat: float, lon: float) -> List[str]: ...

    def photo_url(self, photo_ref: str, max_width: int = 400) -> str: ...


class SearchOrchestrator:
    """Runs one search: query, filter, enrich, score, rank."""

    def __init__(self, cfg: Configuration, places: PlacesProvider) -> None:
        self.cfg = cfg
        self.places = places

    async def search(self, request: SearchRequest) -> SearchResultSet:
        keywords = base_keywords(request.override_keywords, request.free_text_keywords)
        query = build_query(request.references, request.destination, request.toggles, keywords, self.cfg)
        logger.info(
            "search '{}' near {} ({}), token={}",
            query.text_query,
            request.destination.label,
            "area" if query.is_area else "point",
            bool(request.continuation_token),
        )

        # provider failures propagate: an empty list would read as "no matches"
        results, next_token = await asyncio.to_thread(
            self.places.search_text,
            query.text_query,
            query.restriction,
            page_token=request.continuation_token,
            included_type=self.cfg.places_included_type,
            max_results=self.cfg.places_max_results,
        )

        candidates = [p for p in results if p.id and p.rating is not None]
        candidates = [p for p in candidates if p.id not in request.exclude_ids]
        logger.debug("{} of {} results survive id/rating/exclusion filters", len(candidates), len(results))

        if query.is_area and self.cfg.verify_area_results and request.destination.place_id:
            candidates = await self._verify_in_area(candidates, request.destination)

        fields = relevant_fields(request.toggles, keywords, request.free_text or "")
        candidates = await self._enrich(candidates, fields)

        scored: list[ScoredCandidate] = []
        for place in candidates:
            result = score_candidate(
                place,
                request.source,
                request.toggles,
                keywords,
                refinement=request.refinement,
                references=request.references,
            )
            scored.append(
                ScoredCandidate(
                    place=place,
                    score=result.score,
                    matched_reasons=result.reasons,
                    distance_km=_distance(request.destination, place),
                    category_overlap=result.narrative,
                    score_breakdown=result.breakdown,
                )
            )

        ranked = apply_seen_penalty(scored, request.seen_ids)
        return SearchResultSet(
            displayed=ranked[: self.cfg.displayed_count],
            all=ranked,
            has_more=bool(next_token),
            continuation_token=next_token,
        )

    async def _verify_in_area(self, candidates: List[Place], destination: Destination) -> List[Place]:
        async def inside(place: Place) -> bool:
            if place.lat is None or place.lon is None:
                return True
            try:
                place_ids = await asyncio.wait_for(
                    asyncio.to_thread(self.places.reverse_geocode, place.lat, place.lon),
                    timeout=self.cfg.field_fetch_timeout,
                )
                return destination.place_id in place_ids
            except asyncio.TimeoutError:
                logger.warning("area check timed out for {}, keeping it", place.name)
            except Exception as exc:
                logger.warning("area check failed for {}, keeping it: {}", place.name, exc)
            return True

        flags = await asyncio.gather(*(inside(p) for p in candidates))
        kept = [p for p, ok in zip(candidates, flags) if ok]
        if len(kept) < len(candidates):
            logger.info("dropped {} result(s) outside {}", len(candidates) - len(kept), destination.label)
        return kept

    async def _enrich(self, candidates: List[Place], fields: Sequence[str]) -> List[Place]:
        async def enrich(place: Place) -> Place:
            try:
                extra = await asyncio.wait_for(
                    asyncio.to_thread(self.places.fetch_fields, place.id, fields),
                    timeout=self.cfg.field_fetch_timeout,
                )
                return place.merge_fields(extra)
            except asyncio.TimeoutError:
                logger.warning("field fetch timed out for {}, scoring base fields", place.name)
            except Exception as exc:
                logger.warning("field fetch failed for {}, scoring base fields: {}", place.name, exc)
            return place

        return list(await asyncio.gather(*(enrich(p) for p in candidates)))


def _distance(destination: Destination, place: Place) -> Optional[float]:
    if place.lat is None or place.lon is None:
        return None
    return haversine_km(destination.lat, destination.lon, place.lat, place.lon)
