from __future__ import annotations

import json
import logging
import time
from functools import lru_cache
from typing import Any

from openai import OpenAI

from app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def llm_enabled(settings: Settings | None = None) -> bool:
    cfg = settings or default_settings
    if not cfg.llm_enabled:
        return False
    api_key = (cfg.openai_api_key or "").strip()
    if not api_key or _looks_like_placeholder(api_key):
        return False
    return True


@lru_cache(maxsize=4)
def _client(api_key: str, base_url: str | None, timeout: float, max_retries: int) -> OpenAI:
    return OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=max_retries)


def json_completion(
    *,
    user_prompt: str,
    system_prompt: str | None = None,
    temperature: float = 0.3,
    max_output_tokens: int = 1000,
    settings: Settings | None = None,
) -> dict[str, Any] | None:
    """Run one JSON-mode chat completion.

    Returns None when the model is not configured or anything goes wrong, so
    callers can fall back to deterministic scoring.
    """
    cfg = settings or default_settings
    if not llm_enabled(cfg):
        return None

    messages: list[dict[str, str]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})

    started = time.perf_counter()
    try:
        client = _client(
            (cfg.openai_api_key or "").strip(),
            cfg.openai_base_url,
            cfg.llm_timeout_s,
            cfg.openai_max_retries,
        )
        response = client.chat.completions.create(
            model=cfg.openai_model,
            messages=messages,
            temperature=temperature,
            response_format={"type": "json_object"},
            max_tokens=max_output_tokens,
        )
        content = response.choices[0].message.content if response.choices else ""
        latency_ms = int((time.perf_counter() - started) * 1000)
        if not content:
            logger.warning("llm_empty_response model=%s latency_ms=%s", cfg.openai_model, latency_ms)
            return None
        parsed = json.loads(content)
        if not isinstance(parsed, dict):
            logger.warning("llm_invalid_schema model=%s latency_ms=%s", cfg.openai_model, latency_ms)
            return None
        logger.info("llm_completion_ok model=%s latency_ms=%s", cfg.openai_model, latency_ms)
        return parsed
    except Exception as exc:  # noqa: BLE001 - deterministic fallback is expected
        logger.warning("llm_json_failed model=%s prompt_len=%s: %s", cfg.openai_model, len(user_prompt), exc)
        return None
