"""Protocol for LLM providers."""

from __future__ import annotations

from typing import Protocol

from rag_responder.models.domain import GenerationOptions, ProviderResult


class LLMProvider(Protocol):
    name: str
    model: str
    priority: int

    async def is_available(self) -> bool: ...

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions,
    ) -> ProviderResult: ...
