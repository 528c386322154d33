"""Utility helpers for the similar-cafe engine."""

from __future__ import annotations

import hashlib
import math
from typing import Optional


EARTH_RADIUS_KM = 6371.0


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    if not value:
        return "unset"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"


def strip_thinking_tokens(text: str) -> str:
    """Remove <think>...</think> blocks if present."""
    if not text:
        return text
    while True:
        start = text.find("<think>")
        if start == -1:
            break
        end = text.find("</think>", start)
        if end == -1:
            break
        text = text[:start] + text[end + len("</think>") :]
    return text


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def hash_identity(client_ip: str) -> str:
    """One-way identity for anonymous callers, so raw IPs are never stored."""
    digest = hashlib.sha256((client_ip or "unknown").encode("utf-8")).hexdigest()
    return f"ip-{digest[:16]}"
