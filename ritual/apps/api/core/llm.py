from __future__ import annotations

import logging

from ritual.libs.llm_router import LLMRouter, OpenRouterProvider, Task
from ritual.libs.schemas.settings import AppSettings, get_settings

LOGGER = logging.getLogger(__name__)

_ROUTER: LLMRouter | None = None


def build_router(settings: AppSettings | None = None) -> LLMRouter:
    """Route synthesis and swaps through OpenRouter under the configured daily budget."""

    settings = settings or get_settings()
    if not settings.openrouter_api_key:
        raise RuntimeError("OPENROUTER_API_KEY is required for ritual synthesis")
    router = LLMRouter()
    provider = OpenRouterProvider(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        timeout=settings.synthesis_timeout_seconds,
    )
    router.register_provider("openrouter", provider, daily_budget=settings.llm_daily_budget)
    router.set_policy(Task.SYNTHESIS, ["openrouter"])
    router.set_policy(Task.SWAP, ["openrouter"])
    LOGGER.info(
        "llm_router_ready synthesis_model=%s swap_model=%s budget=%s",
        settings.model_synthesis,
        settings.model_swap,
        settings.llm_daily_budget,
    )
    return router


def get_router() -> LLMRouter:
    global _ROUTER
    if _ROUTER is None:
        _ROUTER = build_router()
    return _ROUTER


__all__ = ["build_router", "get_router"]
