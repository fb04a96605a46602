"""Protocol for tenant/bot configuration lookups."""

from __future__ import annotations

from typing import Protocol

from rag_responder.models.domain import DatasetLink, MessagingBotConfig


class TenantDirectory(Protocol):
    async def get_messaging_bot(self, bot_id: str) -> MessagingBotConfig | None: ...

    async def get_dataset_links(
        self, tenant_id: str, dataset_ids: list[str]
    ) -> list[DatasetLink]: ...

    async def get_chatbot_dataset_links(
        self, tenant_id: str, chatbot_id: str
    ) -> list[DatasetLink]: ...
