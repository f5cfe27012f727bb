"""Task-aware LLM router with provider failover and daily budgets."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping, MutableMapping, Sequence

from .base import BaseProvider
from .types import LLMResponse, ProviderError, Task


class BudgetExceededError(RuntimeError):
    """Raised when a provider's daily budget has been exhausted."""


@dataclass
class DailyBudget:
    """Tracks provider spend with automatic daily resets."""

    limit: float | None
    spent: float = 0.0
    day: date = field(default_factory=date.today)

    def check(self, *, provider: str) -> None:
        self._rollover_if_needed()
        if self.limit is not None and self.spent >= self.limit:
            raise BudgetExceededError(
                f"Daily budget exhausted for provider '{provider}': {self.spent:.4f} >= {self.limit:.4f}"
            )

    def register(self, amount: float | None) -> None:
        self._rollover_if_needed()
        if amount and amount > 0:
            self.spent += amount

    def _rollover_if_needed(self) -> None:
        today = date.today()
        if today != self.day:
            self.day = today
            self.spent = 0.0


@dataclass
class LLMRouteConfig:
    """Provider order per task and optional per-provider budgets."""

    policy: dict[Task, list[str]] = field(default_factory=dict)
    provider_budgets: dict[str, float | None] = field(default_factory=dict)


class LLMRouter:
    """Send completions to the first healthy provider configured for a task."""

    def __init__(
        self,
        *,
        config: LLMRouteConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._providers: dict[str, BaseProvider] = {}
        self._logger = logger or logging.getLogger(__name__)
        self._config = config or LLMRouteConfig()
        self._budgets: MutableMapping[str, DailyBudget] = {
            name: DailyBudget(limit)
            for name, limit in self._config.provider_budgets.items()
        }

    def register_provider(
        self,
        key: str,
        provider: BaseProvider,
        *,
        daily_budget: float | None = None,
    ) -> None:
        self._providers[key] = provider
        if daily_budget is not None:
            self._budgets[key] = DailyBudget(daily_budget)
        elif key not in self._budgets:
            self._budgets[key] = DailyBudget(self._config.provider_budgets.get(key))

    def set_policy(self, task: Task, providers: Sequence[str]) -> None:
        if not providers:
            raise ValueError("Provider policy requires at least one provider key")
        self._config.policy[task] = list(dict.fromkeys(providers))

    async def complete(
        self,
        *,
        task: Task,
        messages: Sequence[Mapping[str, Any]],
        model: str,
        **kwargs: Any,
    ) -> LLMResponse:
        """Run a completion, failing over to the next provider on error."""

        payload = [dict(message) for message in messages]
        errors: list[str] = []
        last_exc: Exception | None = None
        for candidate in self._resolve_candidates(task):
            try:
                return await self._execute(task, candidate, payload, model, kwargs)
            except (ProviderError, BudgetExceededError) as exc:
                self._logger.warning(
                    "llm_provider_failed provider=%s task=%s error=%s", candidate, task.value, exc
                )
                errors.append(f"{candidate}: {exc}")
                last_exc = exc
        if len(errors) == 1 and last_exc is not None:
            raise last_exc
        raise ProviderError(f"All providers failed for task '{task.value}': {'; '.join(errors)}")

    async def _execute(
        self,
        task: Task,
        provider_key: str,
        messages: list[dict[str, Any]],
        model: str,
        kwargs: Mapping[str, Any],
    ) -> LLMResponse:
        provider = self._providers[provider_key]
        tracker = self._budget_for(provider_key)
        tracker.check(provider=provider_key)

        response = await provider.complete(messages=messages, model=model, task=task, **kwargs)
        if response.provider is None:
            response.provider = provider_key
        tracker.register(response.cost)
        self._log_usage(provider_key, response)
        return response

    def _resolve_candidates(self, task: Task) -> list[str]:
        candidates = self._config.policy.get(task)
        if not candidates:
            raise ValueError(f"No providers configured for task '{task.value}'")
        resolved = [candidate for candidate in candidates if candidate in self._providers]
        if not resolved:
            raise ValueError(f"No registered providers available for task '{task.value}'")
        return resolved

    def _budget_for(self, provider_key: str) -> DailyBudget:
        tracker = self._budgets.get(provider_key)
        if tracker is None:
            tracker = DailyBudget(self._config.provider_budgets.get(provider_key))
            self._budgets[provider_key] = tracker
        return tracker

    def _log_usage(self, provider_key: str, response: LLMResponse) -> None:
        usage = response.usage or {}
        self._logger.info(
            "llm_task=%s provider=%s model=%s prompt_tokens=%s completion_tokens=%s cost=%.6f",
            response.task.value,
            provider_key,
            response.model,
            usage.get("prompt_tokens"),
            usage.get("completion_tokens"),
            (response.cost or 0.0),
        )


__all__ = ["BudgetExceededError", "DailyBudget", "LLMRouteConfig", "LLMRouter"]
