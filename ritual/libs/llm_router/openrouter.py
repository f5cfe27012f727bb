"""OpenRouter provider: an OpenAI-compatible chat completions gateway."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx

from .base import BaseProvider
from .types import LLMResponse, ProviderError, Task

OPENROUTER_DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(BaseProvider):
    """Provider that sends chat completion requests through OpenRouter."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float = 60.0,
        referer: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("OpenRouter API key is required")

        super().__init__(name="openrouter")
        self._api_key = api_key
        self._base_url = base_url or OPENROUTER_DEFAULT_BASE_URL
        self._timeout = timeout
        self._referer = referer
        self._transport = transport
        self._logger = logging.getLogger(__name__)

    async def complete(
        self,
        *,
        messages: Sequence[Mapping[str, Any]],
        model: str,
        task: Task,
        **kwargs: Any,
    ) -> LLMResponse:
        payload = {
            "model": model,
            "messages": [self._serialise_message(message) for message in messages],
            **kwargs,
        }

        response_json, headers = await self._post("/chat/completions", payload)
        choice = (response_json.get("choices") or [{}])[0]
        message = choice.get("message") or {}

        return LLMResponse(
            model=response_json.get("model") or model,
            task=task,
            text=message.get("content"),
            usage=response_json.get("usage") or {},
            cost=self._extract_cost(response_json, headers),
            provider=self.name,
            raw=response_json,
        )

    async def _post(self, path: str, payload: Mapping[str, Any]) -> tuple[dict[str, Any], Mapping[str, str]]:
        url = f"{self._base_url.rstrip('/')}{path}"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self._referer or "http://localhost:5173",
            "X-Title": "Ritual",
        }

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, headers=headers, json=payload)
            except httpx.TimeoutException as exc:
                raise ProviderError(f"OpenRouter timed out after {self._timeout}s on {url}") from exc
            except httpx.RequestError as exc:
                raise ProviderError(f"OpenRouter network error: {exc}") from exc

        if response.status_code == 429:
            raise ProviderError("Rate limit exceeded. Please try again in a moment.", status_code=429)
        if response.status_code == 402:
            raise ProviderError("AI credits depleted. Please add credits to continue.", status_code=402)
        if not response.is_success:
            self._logger.error(
                "openrouter_error status=%s body=%s", response.status_code, response.text[:400]
            )
            raise ProviderError(
                f"OpenRouter {response.status_code} on {url}",
                status_code=response.status_code,
            )
        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type.lower():
            raise ProviderError(
                f"OpenRouter returned non-JSON (CT={content_type}) on {url}. Body: {response.text[:400]}"
            )
        return response.json(), response.headers

    def _serialise_message(self, message: Mapping[str, Any]) -> dict[str, Any]:
        role = message.get("role")
        content = message.get("content")
        if role is None or content is None:
            raise ValueError("Chat messages must include 'role' and 'content'")
        return {"role": role, "content": content}

    def _extract_cost(self, payload: Mapping[str, Any], headers: Mapping[str, str]) -> float:
        usage = payload.get("usage") or {}
        for key in ("total_cost", "cost", "estimated_cost"):
            value = usage.get(key)
            if value is not None:
                try:
                    return float(value)
                except (TypeError, ValueError):
                    continue

        header_cost = headers.get("x-usage-cost")
        if header_cost:
            try:
                return float(header_cost)
            except ValueError:
                self._logger.debug("Ignoring unparsable x-usage-cost header: %s", header_cost)
        return 0.0


__all__ = ["OPENROUTER_DEFAULT_BASE_URL", "OpenRouterProvider"]
