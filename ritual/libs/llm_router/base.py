"""Abstract provider interface for the LLM router."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from .types import LLMResponse, Task


class BaseProvider(ABC):
    """Common interface all LLM providers must implement."""

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    async def complete(
        self,
        *,
        messages: Sequence[Mapping[str, Any]],
        model: str,
        task: Task,
        **kwargs: Any,
    ) -> LLMResponse:
        """Perform a chat completion request."""


__all__ = ["BaseProvider"]
