from __future__ import annotations

import time
from typing import Callable, List, Mapping, Optional, Sequence

from loguru import logger

from brewmatch.config import Configuration
from brewmatch.models import Place, ScoredCandidate
from brewmatch.services.cache import TTLCache
from brewmatch.services.llm import LLMError, complete, extract_json
from brewmatch.services.preferences import active_preference_ids, active_preferences

GENERIC_EXPLANATION = "Similar vibe and quality."

SYSTEM_PROMPT = (
    "You match coffee shops based on their characteristics, vibe, reputation and visual style.\n"
    "Write one explanation per candidate cafe of why it matches the source cafe.\n"
    "Requirements:\n"
    "- Each description is 2-3 sentences and starts with a short, punchy descriptor (3-5 words).\n"
    "- Every description must be distinctly different: vary the opening phrase and emphasize a different "
    "strength for each cafe (ambiance, quality, ratings, visual style, location).\n"
    "- Be specific and ground the text in the data given; no generic filler.\n"
    "Return ONLY a JSON array of strings, one per cafe, in the same order."
)


def _price(level: Optional[int]) -> str:
    return "$" * level if level else "N/A"


def _candidate_block(index: int, cand: ScoredCandidate) -> str:
    p = cand.place
    lines = [
        f"CAFE {index}: {p.name}",
        f"Rating: {p.rating if p.rating is not None else 'N/A'}/5 ({p.user_rating_count or 0} reviews)",
        f"Price: {_price(p.price_level)}",
    ]
    if p.editorial_summary:
        lines.append(f"Summary: {p.editorial_summary}")
    if cand.image_analysis:
        lines.append(f"Visual style: {cand.image_analysis}")
    lines.append(f"Matched attributes: {', '.join(cand.matched_reasons) or 'Similar quality'}")
    return "\n".join(lines)


def build_prompt(
    source: Place,
    candidates: Sequence[ScoredCandidate],
    destination_label: str,
    toggles: Mapping[str, bool],
) -> str:
    prefs = ", ".join(p.label for p in active_preferences(toggles))
    blocks = "\n---\n".join(_candidate_block(i + 1, c) for i, c in enumerate(candidates))
    return (
        f"Source cafe: {source.name}\n"
        f"Rating: {source.rating if source.rating is not None else 'N/A'}/5\n"
        f"Price: {_price(source.price_level)}\n"
        f"Location: {destination_label or 'Unknown'}\n"
        + (f"User preferences: {prefs}\n" if prefs else "")
        + f"\nHere are {len(candidates)} candidate cafes. Write a unique description for each:\n\n"
        f"{blocks}\n\n"
        f"Return a JSON array of {len(candidates)} strings."
    )


def rule_based_explanation(cand: ScoredCandidate) -> str:
    p = cand.place
    parts: list[str] = []
    if cand.category_overlap:
        parts.append(f"{cand.category_overlap}.")
    highlights = [r for r in cand.matched_reasons if not r.startswith("Type match")]
    if highlights:
        parts.append(f"Highlights: {', '.join(highlights[:4])}.")
    if p.rating is not None:
        parts.append(f"Rated {p.rating:.1f}/5 by {p.user_rating_count or 0} reviewers.")
    return " ".join(parts) or GENERIC_EXPLANATION


def pad(explanations: List[str], count: int) -> List[str]:
    out = [e.strip() if isinstance(e, str) and e.strip() else GENERIC_EXPLANATION for e in explanations[:count]]
    out.extend([GENERIC_EXPLANATION] * (count - len(out)))
    return out


def explanation_cache_key(
    source: Place,
    candidates: Sequence[ScoredCandidate],
    destination_label: str,
    toggles: Mapping[str, bool],
) -> str:
    names = ",".join(c.place.name for c in candidates)
    prefs = ",".join(active_preference_ids(toggles))
    return f"{source.name}|{destination_label.lower()}|{prefs}|{names}"


class ExplanationGenerator:
    """Batched natural-language explanations for displayed candidates."""

    def __init__(
        self,
        cfg: Configuration,
        cache: Optional[TTLCache[List[str]]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cfg = cfg
        self.cache = cache or TTLCache(cfg.explanation_cache_max, cfg.explanation_cache_ttl, clock=clock)

    def explain_batch(
        self,
        source: Place,
        candidates: Sequence[ScoredCandidate],
        destination_label: str = "",
        toggles: Optional[Mapping[str, bool]] = None,
    ) -> List[str]:
        if not candidates:
            return []
        key = explanation_cache_key(source, candidates, destination_label, toggles or {})
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        if not self.cfg.llm_enabled:
            return [rule_based_explanation(c) for c in candidates]

        prompt = build_prompt(source, candidates, destination_label, toggles or {})
        try:
            raw = complete(self.cfg, SYSTEM_PROMPT, prompt, name="Explainer", temperature=0.9)
        except LLMError as exc:
            logger.warning("explanation batch failed, using generic text: {}", exc)
            return pad([], len(candidates))

        data = extract_json(raw)
        if isinstance(data, dict):
            data = data.get("descriptions") or data.get("reasonings") or next(
                (v for v in data.values() if isinstance(v, list)), None
            )
        if not isinstance(data, list):
            logger.warning("explanation batch returned no JSON array: {!r}", raw[:200])
            data = []
        elif len(data) < len(candidates):
            logger.warning("explanation batch returned {} of {} entries", len(data), len(candidates))

        explanations = pad(data, len(candidates))
        self.cache.set(key, explanations)
        return explanations
