"""Answer generation from fused evidence through the provider chain."""

from __future__ import annotations

import re

from rag_responder.generation.orchestrator import GenerationOrchestrator
from rag_responder.generation.prompt_templates import build_system_prompt, build_user_prompt
from rag_responder.models.domain import (
    ChannelPolicy,
    ConversationMessage,
    FusedResult,
    GenerationOptions,
    GenerationOutcome,
)


class AnswerGenerator:
    def __init__(self, orchestrator: GenerationOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def generate(
        self,
        query: str,
        evidence: list[FusedResult],
        policy: ChannelPolicy,
        options: GenerationOptions,
        history: list[ConversationMessage] | None = None,
    ) -> GenerationOutcome:
        system_prompt = build_system_prompt(policy.prompt_variant, policy.max_output_chars)
        user_prompt = build_user_prompt(query, evidence, history)
        return await self._orchestrator.generate_with_fallback(system_prompt, user_prompt, options)


def cited_evidence(answer: str, evidence: list[FusedResult]) -> list[FusedResult]:
    """Evidence entries referenced as [n] in the answer, or all evidence if none are cited."""
    indices = sorted({int(m) for m in re.findall(r"\[(\d+)\]", answer)})
    cited = [evidence[i - 1] for i in indices if 1 <= i <= len(evidence)]
    return cited or list(evidence)
