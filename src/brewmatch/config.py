from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import BaseModel, Field

from brewmatch.utils import mask_secret


class Configuration(BaseModel):
    # Google Places
    google_places_api_key: Optional[str] = Field(default=None)
    places_base_url: str = Field(default="https://places.googleapis.com/v1")
    geocode_base_url: str = Field(default="https://maps.googleapis.com/maps/api/geocode/json")
    places_timeout: int = Field(default=10)
    places_max_results: int = Field(default=20)
    places_included_type: Optional[str] = Field(default="coffee_shop")

    # Geography
    max_area_diagonal_km: float = Field(default=100.0)
    max_search_radius_km: float = Field(default=50.0)
    verify_area_results: bool = Field(default=True)

    # Ranking
    displayed_count: int = Field(default=5)
    batch_size: int = Field(default=5)

    # Per-candidate auxiliary fetches
    field_fetch_timeout: float = Field(default=8.0)
    image_analysis_timeout: float = Field(default=3.0)
    image_analysis_enabled: bool = Field(default=False)

    # LLM (optional)
    local_llm: Optional[str] = Field(default=None)
    llm_provider: Optional[str] = Field(default=None)
    llm_api_key: Optional[str] = Field(default=None)
    llm_base_url: Optional[str] = Field(default=None)
    llm_model_id: Optional[str] = Field(default=None)
    # native ollama base (without /v1)
    ollama_base_url: str = Field(default="http://localhost:11434")

    # Caches
    explanation_cache_ttl: int = Field(default=300)
    explanation_cache_max: int = Field(default=100)
    image_cache_ttl: int = Field(default=3600)
    image_cache_max: int = Field(default=200)
    search_state_ttl: int = Field(default=86400)
    search_state_max: int = Field(default=500)

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        raw: dict[str, Any] = {}

        env_map = {
            "google_places_api_key": os.getenv("GOOGLE_PLACES_API_KEY"),
            "places_base_url": os.getenv("GOOGLE_PLACES_BASE_URL"),
            "geocode_base_url": os.getenv("GOOGLE_GEOCODE_BASE_URL"),
            "places_timeout": os.getenv("PLACES_TIMEOUT"),
            "places_max_results": os.getenv("PLACES_MAX_RESULTS"),
            "places_included_type": os.getenv("PLACES_INCLUDED_TYPE"),
            "max_area_diagonal_km": os.getenv("MAX_AREA_DIAGONAL_KM"),
            "max_search_radius_km": os.getenv("MAX_SEARCH_RADIUS_KM"),
            "verify_area_results": os.getenv("VERIFY_AREA_RESULTS"),
            "displayed_count": os.getenv("DISPLAYED_COUNT"),
            "batch_size": os.getenv("BATCH_SIZE"),
            "field_fetch_timeout": os.getenv("FIELD_FETCH_TIMEOUT"),
            "image_analysis_timeout": os.getenv("IMAGE_ANALYSIS_TIMEOUT"),
            "image_analysis_enabled": os.getenv("IMAGE_ANALYSIS_ENABLED"),
            # LLM
            "local_llm": os.getenv("LOCAL_LLM"),
            "llm_provider": os.getenv("LLM_PROVIDER"),
            "llm_api_key": os.getenv("LLM_API_KEY"),
            "llm_base_url": os.getenv("LLM_BASE_URL"),
            "llm_model_id": os.getenv("LLM_MODEL_ID"),
            "ollama_base_url": os.getenv("OLLAMA_BASE_URL"),
            # Caches
            "explanation_cache_ttl": os.getenv("EXPLANATION_CACHE_TTL"),
            "explanation_cache_max": os.getenv("EXPLANATION_CACHE_MAX"),
            "image_cache_ttl": os.getenv("IMAGE_CACHE_TTL"),
            "image_cache_max": os.getenv("IMAGE_CACHE_MAX"),
            "search_state_ttl": os.getenv("SEARCH_STATE_TTL"),
            "search_state_max": os.getenv("SEARCH_STATE_MAX"),
        }

        bool_fields = {"verify_area_results", "image_analysis_enabled"}

        for k, v in env_map.items():
            if v is None:
                continue
            if k in bool_fields:
                raw[k] = str(v).lower() in {"1", "true", "yes", "on"}
            else:
                raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    def require_places(self) -> None:
        if not self.google_places_api_key:
            raise ValueError("GOOGLE_PLACES_API_KEY is required")

    @property
    def llm_enabled(self) -> bool:
        return bool(self.llm_provider or self.llm_base_url or self.local_llm)

    def log_summary(self) -> str:
        return (
            "places=%s base=%s timeout=%s max_results=%s included_type=%s llm=%s api_key=%s"
            % (
                bool(self.google_places_api_key),
                self.places_base_url,
                self.places_timeout,
                self.places_max_results,
                self.places_included_type,
                self.llm_provider or "unset",
                mask_secret(self.google_places_api_key),
            )
        )

    def sanitized_ollama_url(self) -> str:
        base = (self.ollama_base_url or "http://localhost:11434").rstrip("/")
        if not base.endswith("/v1"):
            base = f"{base}/v1"
        return base
