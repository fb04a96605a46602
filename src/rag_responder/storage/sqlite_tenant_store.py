"""SQLite-backed lookup of messaging bots and dataset weights."""

from __future__ import annotations

import aiosqlite

from rag_responder.models.domain import DatasetLink, MessagingBotConfig
from rag_responder.storage.migrations import initialize_tenant_db


class SQLiteTenantStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_tenant_db(self._db_path)

    async def save_dataset(self, dataset_id: str, tenant_id: str, weight: float = 1.0) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO datasets (dataset_id, tenant_id, weight) VALUES (?, ?, ?)",
                (dataset_id, tenant_id, weight),
            )
            await db.commit()

    async def save_messaging_bot(
        self,
        bot_id: str,
        tenant_id: str,
        chatbot_id: str | None,
        dataset_ids: list[str],
        max_response_length: int | None = None,
        welcome_message: str | None = None,
        enabled: bool = True,
    ) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO messaging_bots "
                "(bot_id, tenant_id, chatbot_id, enabled, max_response_length, welcome_message) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (bot_id, tenant_id, chatbot_id, int(enabled), max_response_length, welcome_message),
            )
            if chatbot_id:
                await db.executemany(
                    "INSERT OR IGNORE INTO chatbot_datasets (chatbot_id, dataset_id) VALUES (?, ?)",
                    [(chatbot_id, d) for d in dataset_ids],
                )
            await db.commit()

    async def get_messaging_bot(self, bot_id: str) -> MessagingBotConfig | None:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM messaging_bots WHERE bot_id = ? AND enabled = 1", (bot_id,)
            ) as cursor:
                bot = await cursor.fetchone()
                if bot is None:
                    return None

            links = tuple(await self._chatbot_links(db, bot["tenant_id"], bot["chatbot_id"]))

            return MessagingBotConfig(
                bot_id=bot["bot_id"],
                tenant_id=bot["tenant_id"],
                chatbot_id=bot["chatbot_id"],
                datasets=links,
                max_response_length=bot["max_response_length"],
                welcome_message=bot["welcome_message"],
            )

    async def get_dataset_links(self, tenant_id: str, dataset_ids: list[str]) -> list[DatasetLink]:
        """Weights for the requested datasets, restricted to ones the tenant owns."""
        dataset_ids = list(dict.fromkeys(dataset_ids))
        if not dataset_ids:
            return []
        placeholders = ",".join("?" for _ in dataset_ids)
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT dataset_id, weight FROM datasets "
                f"WHERE tenant_id = ? AND dataset_id IN ({placeholders})",
                (tenant_id, *dataset_ids),
            ) as cursor:
                rows = {row["dataset_id"]: row["weight"] for row in await cursor.fetchall()}
        return [DatasetLink(dataset_id=d, weight=rows[d]) for d in dataset_ids if d in rows]

    async def get_chatbot_dataset_links(self, tenant_id: str, chatbot_id: str) -> list[DatasetLink]:
        """Datasets linked to a chatbot, restricted to ones the tenant owns."""
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            return await self._chatbot_links(db, tenant_id, chatbot_id)

    @staticmethod
    async def _chatbot_links(
        db: aiosqlite.Connection, tenant_id: str, chatbot_id: str
    ) -> list[DatasetLink]:
        async with db.execute(
            "SELECT d.dataset_id, d.weight FROM chatbot_datasets cd "
            "JOIN datasets d ON d.dataset_id = cd.dataset_id "
            "WHERE cd.chatbot_id = ? AND d.tenant_id = ? ORDER BY d.dataset_id",
            (chatbot_id, tenant_id),
        ) as cursor:
            return [
                DatasetLink(dataset_id=row["dataset_id"], weight=row["weight"])
                for row in await cursor.fetchall()
            ]
