"""Shared type utilities for the LLM router."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class Task(str, Enum):
    """Generation tasks routed to providers."""

    SYNTHESIS = "synthesis"
    SWAP = "swap"


@dataclass(slots=True)
class LLMResponse:
    """Normalised completion returned by providers."""

    model: str
    task: Task
    text: str | None = None
    usage: Mapping[str, Any] | None = None
    cost: float | None = None
    provider: str | None = None
    raw: Mapping[str, Any] | None = None


class ProviderError(RuntimeError):
    """Raised by a provider when a request fails; ``status_code`` is set for HTTP errors."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_out_of_credit(self) -> bool:
        return self.status_code == 402


__all__ = ["LLMResponse", "ProviderError", "Task"]
