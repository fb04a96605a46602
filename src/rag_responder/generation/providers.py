"""LLM provider registry.

Each provider is a plain record of ``name``, ``model``, ``priority`` and two
async callables, ``is_available`` and ``generate``. The registry is built once
at startup from settings and treated as read-only afterwards.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from google import genai
from google.genai import types
from openai import AsyncOpenAI

from rag_responder.config.settings import Settings
from rag_responder.exceptions import GenerationError
from rag_responder.models.domain import GenerationOptions, ProviderResult


@dataclass(frozen=True)
class ProviderEntry:
    name: str
    model: str
    priority: int
    is_available: Callable[[], Awaitable[bool]]
    generate: Callable[[str, str, GenerationOptions], Awaitable[ProviderResult]]


def gemini_provider(api_key: str, model: str, priority: int = 1) -> ProviderEntry:
    client: genai.Client | None = None

    async def is_available() -> bool:
        return bool(api_key)

    async def generate(
        system_prompt: str, user_prompt: str, options: GenerationOptions
    ) -> ProviderResult:
        nonlocal client
        try:
            if client is None:
                client = genai.Client(api_key=api_key)
            config = types.GenerateContentConfig(
                temperature=options.temperature,
                max_output_tokens=options.max_tokens,
                system_instruction=system_prompt,
            )
            response = await client.aio.models.generate_content(
                model=model,
                contents=user_prompt,
                config=config,
            )
            usage = response.usage_metadata
            return ProviderResult(
                text=response.text or "",
                input_tokens=(usage.prompt_token_count or 0) if usage else 0,
                output_tokens=(usage.candidates_token_count or 0) if usage else 0,
            )
        except Exception as e:
            raise GenerationError(f"Gemini generation failed: {e}") from e

    return ProviderEntry(
        name="google",
        model=model,
        priority=priority,
        is_available=is_available,
        generate=generate,
    )


def openai_provider(api_key: str, model: str, priority: int = 2) -> ProviderEntry:
    client: AsyncOpenAI | None = None

    async def is_available() -> bool:
        return bool(api_key)

    async def generate(
        system_prompt: str, user_prompt: str, options: GenerationOptions
    ) -> ProviderResult:
        nonlocal client
        try:
            if client is None:
                client = AsyncOpenAI(api_key=api_key)
            response = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=options.max_tokens,
                temperature=options.temperature,
            )
            usage = response.usage
            return ProviderResult(
                text=response.choices[0].message.content or "",
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
            )
        except Exception as e:
            raise GenerationError(f"OpenAI generation failed: {e}") from e

    return ProviderEntry(
        name="openai",
        model=model,
        priority=priority,
        is_available=is_available,
        generate=generate,
    )


def build_provider_registry(settings: Settings) -> tuple[ProviderEntry, ...]:
    providers = [
        gemini_provider(settings.google_api_key, settings.gemini_model, priority=1),
        openai_provider(settings.openai_api_key, settings.openai_model, priority=2),
    ]
    return tuple(sorted(providers, key=lambda p: p.priority))
