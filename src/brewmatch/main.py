from __future__ import annotations

import dataclasses
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field

from brewmatch.config import Configuration
from brewmatch.models import Bounds, Destination, Place, ScoredCandidate, SearchRequest, SearchResultSet
from brewmatch.services.google_places import GooglePlacesClient, PlacesError
from brewmatch.services.search_service import SearchService
from brewmatch.utils import hash_identity


class BoundsPayload(BaseModel):
    north: float
    south: float
    east: float
    west: float


class PlaceInput(BaseModel):
    id: str
    name: str
    address: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    types: List[str] = []
    primary_type: Optional[str] = None
    rating: Optional[float] = None
    user_rating_count: Optional[int] = None
    price_level: Optional[int] = Field(None, ge=0, le=4)
    photos: List[str] = []
    editorial_summary: Optional[str] = None


class DestinationInput(BaseModel):
    label: str
    lat: float
    lon: float
    bounds: Optional[BoundsPayload] = None
    types: List[str] = []
    place_id: Optional[str] = None


class SearchPayload(BaseModel):
    references: List[PlaceInput] = Field(..., min_length=1, description="Places the user already likes")
    destination: DestinationInput
    toggles: Dict[str, bool] = {}
    free_text: Optional[str] = None
    override_keywords: Optional[List[str]] = None
    refinement: bool = False
    user_id: Optional[str] = None


class MorePayload(BaseModel):
    cache_key: str


class InteractionPayload(BaseModel):
    candidate_id: str
    action: Literal["view", "save", "unsave"]
    destination: Optional[str] = None
    name: Optional[str] = None
    user_id: Optional[str] = None


class CandidatePayload(BaseModel):
    place: Dict[str, Any]
    score: float
    matched_reasons: List[str] = []
    distance_km: Optional[float] = None
    category_overlap: Optional[str] = None
    previously_seen: bool = False
    explanation: Optional[str] = None
    image_analysis: Optional[str] = None
    score_breakdown: Dict[str, float] = {}


class SearchResponse(BaseModel):
    displayed: List[CandidatePayload]
    total: int
    has_more: bool
    cache_key: Optional[str] = None


def _candidate_payload(c: ScoredCandidate) -> CandidatePayload:
    return CandidatePayload(
        place=dataclasses.asdict(c.place),
        score=round(c.score, 3),
        matched_reasons=c.matched_reasons,
        distance_km=round(c.distance_km, 2) if c.distance_km is not None else None,
        category_overlap=c.category_overlap,
        previously_seen=c.previously_seen,
        explanation=c.explanation,
        image_analysis=c.image_analysis,
        score_breakdown={k: round(v, 3) for k, v in c.score_breakdown.items()},
    )


def _response(result: SearchResultSet) -> SearchResponse:
    return SearchResponse(
        displayed=[_candidate_payload(c) for c in result.displayed],
        total=len(result.all),
        has_more=result.has_more,
        cache_key=result.cache_key,
    )


def resolve_identity(request: Request, user_id: Optional[str] = None) -> str:
    """Signed-in user id, else a hash of the caller's network address."""
    explicit = user_id or request.headers.get("x-user-id")
    if explicit:
        return explicit
    ip = request.headers.get("x-real-ip")
    if not ip:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
    if not ip and request.client:
        ip = request.client.host
    return hash_identity(ip or "unknown")


def _to_request(payload: SearchPayload, identity: str) -> SearchRequest:
    dest = payload.destination
    return SearchRequest(
        references=[Place(**ref.model_dump()) for ref in payload.references],
        destination=Destination(
            label=dest.label,
            lat=dest.lat,
            lon=dest.lon,
            bounds=Bounds(**dest.bounds.model_dump()) if dest.bounds else None,
            types=list(dest.types),
            place_id=dest.place_id,
        ),
        toggles=dict(payload.toggles),
        free_text=payload.free_text,
        override_keywords=payload.override_keywords,
        refinement=payload.refinement,
        identity=identity,
    )


def create_app(cfg: Optional[Configuration] = None, service: Optional[SearchService] = None) -> FastAPI:
    if cfg is None:
        load_dotenv()
        cfg = Configuration.from_env()
    if service is None:
        service = SearchService(cfg, GooglePlacesClient(cfg))
    logger.info("cfg: {}", cfg.log_summary())

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        await service.drain()

    app = FastAPI(title="Brewmatch similar-cafe search", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.cfg = cfg
    app.state.service = service

    @app.get("/healthz")
    def healthz() -> dict:
        return {"status": "ok", "places": bool(cfg.google_places_api_key), "llm": cfg.llm_enabled}

    @app.post("/search", response_model=SearchResponse)
    async def search(payload: SearchPayload, request: Request) -> SearchResponse:
        try:
            cfg.require_places()
            search_request = _to_request(payload, resolve_identity(request, payload.user_id))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

        try:
            result = await service.search(search_request)
        except PlacesError as exc:
            logger.error("place search failed: {}", exc)
            raise HTTPException(status_code=502, detail=f"place search failed: {exc}")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.exception("search failed: {}", exc)
            raise HTTPException(status_code=500, detail="internal error")
        return _response(result)

    @app.post("/search/more", response_model=SearchResponse)
    async def search_more(payload: MorePayload) -> SearchResponse:
        try:
            result = await service.load_more(payload.cache_key)
        except PlacesError as exc:
            logger.error("next page failed: {}", exc)
            raise HTTPException(status_code=502, detail=f"place search failed: {exc}")
        if result is None:
            raise HTTPException(status_code=404, detail="no cached search for this key")
        return _response(result)

    @app.post("/interactions")
    def interactions(payload: InteractionPayload, request: Request) -> dict:
        explicit = payload.user_id or request.headers.get("x-user-id")
        if payload.action in ("save", "unsave"):
            if not explicit:
                raise HTTPException(status_code=400, detail="user id required to save places")
            record = service.mark_saved(explicit, payload.candidate_id, payload.action == "save")
        else:
            if not payload.destination:
                raise HTTPException(status_code=400, detail="destination required for view events")
            identity = resolve_identity(request, payload.user_id)
            record = service.record_view(identity, payload.candidate_id, payload.destination, payload.name)
        return {"ok": True, "record": dataclasses.asdict(record)}

    return app


app = create_app()
