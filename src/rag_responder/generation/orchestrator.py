"""Prioritized LLM provider chain with sequential failover."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence

from rag_responder.exceptions import AllProvidersFailed
from rag_responder.models.domain import (
    GenerationOptions,
    GenerationOutcome,
    ProviderFailure,
    ProviderResult,
)
from rag_responder.observability.logger import get_logger
from rag_responder.protocols.llm import LLMProvider
from rag_responder.protocols.usage import UsageTracker

logger = get_logger("generation_orchestrator")


class GenerationOrchestrator:
    """Tries providers one at a time in ascending priority.

    Unavailable providers are skipped without counting as failures. A provider
    that raises is recorded and never retried within the same call. The first
    success returns immediately; usage tracking for it runs as a detached task.
    """

    def __init__(
        self,
        providers: Sequence[LLMProvider],
        usage_tracker: UsageTracker | None = None,
    ) -> None:
        self._providers = tuple(sorted(providers, key=lambda p: p.priority))
        self._usage_tracker = usage_tracker
        self._background: set[asyncio.Task] = set()

    @property
    def providers(self) -> tuple[LLMProvider, ...]:
        return self._providers

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions | None = None,
    ) -> str:
        outcome = await self.generate_with_fallback(system_prompt, user_prompt, options)
        return outcome.text

    async def generate_with_fallback(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions | None = None,
    ) -> GenerationOutcome:
        options = options or GenerationOptions()
        start = time.monotonic()
        errors: list[ProviderFailure] = []
        skipped: list[str] = []

        for index, provider in enumerate(self._providers):
            try:
                if not await provider.is_available():
                    logger.debug("provider_unavailable", provider=provider.name)
                    skipped.append(provider.name)
                    continue

                logger.debug("trying_provider", provider=provider.name, attempt=index + 1)
                result = await provider.generate(system_prompt, user_prompt, options)
            except Exception as e:
                errors.append(
                    ProviderFailure(
                        provider_name=provider.name,
                        model_id=provider.model,
                        message=str(e) or type(e).__name__,
                    )
                )
                logger.warning("provider_failed", provider=provider.name, error=str(e))
                continue

            logger.info(
                "llm_response_generated",
                provider=provider.name,
                model=provider.model,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
                response_length=len(result.text),
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
                failed_before=len(errors),
            )
            self._track_usage(provider, result, options)
            return GenerationOutcome(
                text=result.text,
                provider_name=provider.name,
                model_id=provider.model,
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
                errors=errors,
                skipped=skipped,
            )

        logger.error(
            "all_providers_failed",
            errors=[{"provider": e.provider_name, "error": e.message} for e in errors],
            skipped=skipped,
        )
        raise AllProvidersFailed(errors)

    def _track_usage(
        self, provider: LLMProvider, result: ProviderResult, options: GenerationOptions
    ) -> None:
        if self._usage_tracker is None or not options.tenant_id:
            return
        task = asyncio.create_task(self._safe_track(provider, result, options))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _safe_track(
        self, provider: LLMProvider, result: ProviderResult, options: GenerationOptions
    ) -> None:
        try:
            await self._usage_tracker.track(
                tenant_id=options.tenant_id,
                provider=provider.name,
                model=provider.model,
                feature_type=options.feature_type,
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
                chatbot_id=options.chatbot_id,
                conversation_id=options.conversation_id,
            )
        except Exception as e:
            logger.warning("usage_tracking_failed", provider=provider.name, error=str(e))

    async def drain(self) -> None:
        """Wait for pending usage-tracking tasks (shutdown and tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
