"""Model-agnostic LLM routing utilities."""

from .base import BaseProvider
from .openrouter import OPENROUTER_DEFAULT_BASE_URL, OpenRouterProvider
from .router import BudgetExceededError, DailyBudget, LLMRouteConfig, LLMRouter
from .types import LLMResponse, ProviderError, Task

__all__ = [
    "BaseProvider",
    "BudgetExceededError",
    "DailyBudget",
    "LLMResponse",
    "LLMRouteConfig",
    "LLMRouter",
    "OPENROUTER_DEFAULT_BASE_URL",
    "OpenRouterProvider",
    "ProviderError",
    "Task",
]
