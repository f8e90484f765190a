"""LLM initialisation — single place to swap providers.

Supports two modes:

1. **OpenAI cloud** (default) — set ``OPENAI_API_KEY``.
2. **OpenAI-compatible endpoint** — set ``LLM_BASE_URL`` (e.g. a vLLM or
   LiteLLM gateway).  Anything that serves ``/v1/chat/completions`` with
   tool calling works unchanged with ``ChatOpenAI``.
"""

from __future__ import annotations

import logging

from langchain_openai import ChatOpenAI

from finsight.config import settings

logger = logging.getLogger(__name__)


def get_llm(temperature: float | None = None, max_tokens: int | None = None) -> ChatOpenAI:
    """Return the configured chat model.

    Temperature and the completion token cap default to
    ``settings.llm_temperature`` / ``settings.llm_max_tokens``.  When
    ``settings.llm_base_url`` is set a dummy key (``"EMPTY"``) is accepted
    because self-hosted endpoints usually skip authentication.
    """
    kwargs: dict = {
        "model": settings.llm_model_name,
        "temperature": settings.llm_temperature if temperature is None else temperature,
        "max_tokens": settings.llm_max_tokens if max_tokens is None else max_tokens,
    }

    if settings.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.llm_base_url)
        kwargs["base_url"] = settings.llm_base_url
        kwargs["api_key"] = settings.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = settings.openai_api_key

    return ChatOpenAI(**kwargs)
