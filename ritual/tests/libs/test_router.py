from typing import Any

import httpx
import pytest

from ritual.libs.llm_router.base import BaseProvider
from ritual.libs.llm_router.openrouter import OpenRouterProvider
from ritual.libs.llm_router.router import BudgetExceededError, LLMRouter
from ritual.libs.llm_router.types import LLMResponse, ProviderError, Task


class DummyProvider(BaseProvider):
    def __init__(self, name: str = "dummy", *, fail_with: Exception | None = None, cost: float = 0.0) -> None:
        super().__init__(name=name)
        self.fail_with = fail_with
        self.cost = cost
        self.calls = 0

    async def complete(self, *, messages, model: str, task: Task, **kwargs: Any) -> LLMResponse:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return LLMResponse(model=model, task=task, text='[{"title": "Picnic"}]', cost=self.cost)


@pytest.mark.asyncio
async def test_router_fails_over_to_next_provider() -> None:
    router = LLMRouter()
    broken = DummyProvider("broken", fail_with=ProviderError("boom", status_code=500))
    healthy = DummyProvider("healthy")
    router.register_provider("broken", broken)
    router.register_provider("healthy", healthy)
    router.set_policy(Task.SYNTHESIS, ["broken", "healthy"])

    response = await router.complete(task=Task.SYNTHESIS, messages=[{"role": "user", "content": "hi"}], model="m")

    assert response.provider == "healthy"
    assert broken.calls == 1 and healthy.calls == 1


@pytest.mark.asyncio
async def test_single_provider_error_is_reraised_with_status() -> None:
    router = LLMRouter()
    router.register_provider("only", DummyProvider(fail_with=ProviderError("slow down", status_code=429)))
    router.set_policy(Task.SWAP, ["only"])

    with pytest.raises(ProviderError) as excinfo:
        await router.complete(task=Task.SWAP, messages=[{"role": "user", "content": "hi"}], model="m")

    assert excinfo.value.is_rate_limited


@pytest.mark.asyncio
async def test_daily_budget_blocks_after_spend() -> None:
    router = LLMRouter()
    router.register_provider("paid", DummyProvider(cost=1.5), daily_budget=1.0)
    router.set_policy(Task.SYNTHESIS, ["paid"])
    messages = [{"role": "user", "content": "hi"}]

    await router.complete(task=Task.SYNTHESIS, messages=messages, model="m")
    with pytest.raises(BudgetExceededError):
        await router.complete(task=Task.SYNTHESIS, messages=messages, model="m")


@pytest.mark.asyncio
@pytest.mark.parametrize("status, flag", [(429, "is_rate_limited"), (402, "is_out_of_credit")])
async def test_openrouter_maps_quota_statuses(status: int, flag: str) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(status, json={"error": "no"}))
    provider = OpenRouterProvider("key", transport=transport)

    with pytest.raises(ProviderError) as excinfo:
        await provider.complete(messages=[{"role": "user", "content": "hi"}], model="m", task=Task.SYNTHESIS)

    assert getattr(excinfo.value, flag)


@pytest.mark.asyncio
async def test_openrouter_parses_completion_and_cost() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={
                "model": "google/gemini-2.5-pro",
                "choices": [{"message": {"content": "[]"}}],
                "usage": {"prompt_tokens": 10, "completion_tokens": 2, "cost": "0.0042"},
            },
        )

    provider = OpenRouterProvider("key", transport=httpx.MockTransport(handler))
    response = await provider.complete(messages=[{"role": "user", "content": "hi"}], model="x", task=Task.SYNTHESIS)

    assert seen["auth"] == "Bearer key"
    assert response.text == "[]"
    assert response.model == "google/gemini-2.5-pro"
    assert response.cost == pytest.approx(0.0042)
