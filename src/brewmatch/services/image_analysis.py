from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

import requests
from loguru import logger

from brewmatch.config import Configuration
from brewmatch.services.cache import TTLCache

DEFAULT_VISION_MODEL = "gpt-4o-mini"

VISION_PROMPT = (
    "Analyze this cafe photo and describe its style, ambiance, and vibe in 2-3 descriptive words "
    "or short phrases. Focus on the most prominent characteristics like: minimalist, cozy, industrial, "
    "vintage, modern, rustic, bright, intimate, spacious, plant-filled, art-filled. "
    "Return ONLY the comma-separated descriptive words/phrases, nothing else."
)


def _message_text(payload: Any) -> Optional[str]:
    """First choice's text content, or None when the reply has no plain string content."""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str):
        return None
    return content.strip() or None


class ImageAnalyzer:
    """Describes a cafe's visual style from one photo via an OpenAI-compatible vision endpoint."""

    def __init__(
        self,
        cfg: Configuration,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cfg = cfg
        self.session = session or requests.Session()
        self.cache: TTLCache[str] = TTLCache(cfg.image_cache_max, cfg.image_cache_ttl, clock=clock)

    @property
    def enabled(self) -> bool:
        return bool(self.cfg.image_analysis_enabled and self.cfg.llm_base_url)

    def describe(self, photo_url: str) -> Optional[str]:
        cached = self.cache.get(photo_url)
        if cached is not None:
            return cached

        headers = {"Content-Type": "application/json"}
        if self.cfg.llm_api_key:
            headers["Authorization"] = f"Bearer {self.cfg.llm_api_key}"
        body = {
            "model": self.cfg.llm_model_id or DEFAULT_VISION_MODEL,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": VISION_PROMPT},
                        {"type": "image_url", "image_url": {"url": photo_url}},
                    ],
                }
            ],
            "max_tokens": 50,
        }
        url = f"{self.cfg.llm_base_url.rstrip('/')}/chat/completions"
        resp = self.session.post(url, json=body, headers=headers, timeout=self.cfg.image_analysis_timeout)
        resp.raise_for_status()
        text = _message_text(resp.json())
        if not text:
            return None
        self.cache.set(photo_url, text)
        return text

    async def analyze_with_timeout(self, photo_url: Optional[str]) -> Optional[str]:
        """Style words for ``photo_url``, or None on timeout or any failure."""
        if not photo_url or not self.enabled:
            return None
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.describe, photo_url),
                timeout=self.cfg.image_analysis_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("image analysis timed out after {}s", self.cfg.image_analysis_timeout)
        except Exception as exc:
            logger.warning("image analysis failed: {}", exc)
        return None
