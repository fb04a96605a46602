"""Protocol for token usage tracking."""

from __future__ import annotations

from typing import Protocol


class UsageTracker(Protocol):
    async def track(
        self,
        tenant_id: str,
        provider: str,
        model: str,
        feature_type: str,
        input_tokens: int,
        output_tokens: int,
        chatbot_id: str | None = None,
        conversation_id: str | None = None,
    ) -> None: ...
