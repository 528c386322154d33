from __future__ import annotations

import json
from typing import Any, Dict, Optional

from hello_agents import HelloAgentsLLM, ToolAwareSimpleAgent
from loguru import logger

from brewmatch.config import Configuration
from brewmatch.utils import strip_thinking_tokens

try:
    from google import genai
    GEMINI_AVAILABLE = True
except ImportError:
    GEMINI_AVAILABLE = False

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"


class LLMError(RuntimeError):
    pass


def init_llm(cfg: Configuration, temperature: float = 0.1) -> tuple[Any, str]:
    """Initialize LLM with Gemini primary and HelloAgents (OpenAI-compatible / Ollama) fallback."""
    provider = (cfg.llm_provider or "").lower()

    if provider == "google" and GEMINI_AVAILABLE and cfg.llm_api_key:
        try:
            client = genai.Client(api_key=cfg.llm_api_key)
            logger.debug("LLM using Gemini model: {}", cfg.llm_model_id or DEFAULT_GEMINI_MODEL)
            return client, "gemini"
        except Exception as exc:
            logger.warning("Gemini initialization failed: {}, falling back to HelloAgents", exc)

    kw: Dict[str, Any] = {"temperature": temperature}
    if cfg.llm_model_id or cfg.local_llm:
        kw["model"] = cfg.llm_model_id or cfg.local_llm
    if cfg.llm_provider:
        kw["provider"] = cfg.llm_provider
    if cfg.llm_base_url:
        kw["base_url"] = cfg.llm_base_url
    elif provider == "ollama":
        kw["base_url"] = cfg.sanitized_ollama_url()
    if cfg.llm_api_key:
        kw["api_key"] = cfg.llm_api_key
    return HelloAgentsLLM(**kw), "hello_agents"


def complete(
    cfg: Configuration,
    system_prompt: str,
    prompt: str,
    *,
    name: str = "Assistant",
    temperature: float = 0.1,
) -> str:
    """Run one prompt and return the cleaned text. Raises LLMError on any backend failure."""
    try:
        client, kind = init_llm(cfg, temperature)
        if kind == "gemini":
            response = client.models.generate_content(
                model=cfg.llm_model_id or DEFAULT_GEMINI_MODEL,
                contents=f"{system_prompt}\n\n{prompt}",
            )
            raw = response.text
        else:
            agent = ToolAwareSimpleAgent(
                name=name,
                llm=client,
                system_prompt=system_prompt,
                enable_tool_calling=False,
            )
            raw = agent.run(prompt)
            agent.clear_history()
    except Exception as exc:
        raise LLMError(f"{name} call failed: {exc}") from exc
    return strip_thinking_tokens(raw or "").strip()


def extract_json(text: str) -> Optional[Any]:
    """Locate the outermost JSON array or object in free-form model output."""
    if not text:
        return None
    for open_ch, close_ch in (("[", "]"), ("{", "}")):
        s, e = text.find(open_ch), text.rfind(close_ch)
        if s != -1 and e > s:
            try:
                return json.loads(text[s : e + 1])
            except json.JSONDecodeError:
                continue
    return None
