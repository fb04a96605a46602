"""Protocol for per-session conversation history."""

from __future__ import annotations

from typing import Protocol

from rag_responder.models.domain import Conversation, ConversationMessage


class ConversationStore(Protocol):
    async def get_or_create(
        self,
        tenant_id: str,
        session_id: str,
        channel: str,
        chatbot_id: str | None = None,
    ) -> Conversation: ...

    async def recent_messages(
        self, conversation_id: str, limit: int
    ) -> list[ConversationMessage]: ...

    async def append_exchange(
        self,
        conversation_id: str,
        question: str,
        answer: str,
        source_document_ids: list[str] | None = None,
    ) -> None: ...
