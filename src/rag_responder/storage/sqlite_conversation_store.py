"""SQLite-backed conversation history keyed by (tenant, session)."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from uuid import uuid4

import aiosqlite

from rag_responder.exceptions import ConversationStoreError
from rag_responder.models.domain import (
    ROLE_ASSISTANT,
    ROLE_USER,
    Conversation,
    ConversationMessage,
)
from rag_responder.storage.migrations import initialize_conversation_db


class SQLiteConversationStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_conversation_db(self._db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as e:
            raise ConversationStoreError(f"Conversation store failed: {e}") from e

    async def get_or_create(
        self,
        tenant_id: str,
        session_id: str,
        channel: str,
        chatbot_id: str | None = None,
    ) -> Conversation:
        now = datetime.now(timezone.utc).isoformat()
        async with self._connect() as db:
            await db.execute(
                "INSERT OR IGNORE INTO conversations "
                "(conversation_id, tenant_id, session_id, channel, chatbot_id, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (str(uuid4()), tenant_id, session_id, channel, chatbot_id, now, now),
            )
            await db.commit()
            async with db.execute(
                "SELECT c.conversation_id, c.channel, "
                "(SELECT COUNT(*) FROM conversation_messages m "
                " WHERE m.conversation_id = c.conversation_id) AS message_count "
                "FROM conversations c WHERE c.tenant_id = ? AND c.session_id = ?",
                (tenant_id, session_id),
            ) as cursor:
                row = await cursor.fetchone()

        return Conversation(
            conversation_id=row["conversation_id"],
            tenant_id=tenant_id,
            session_id=session_id,
            channel=row["channel"],
            message_count=row["message_count"],
        )

    async def recent_messages(self, conversation_id: str, limit: int) -> list[ConversationMessage]:
        """The last ``limit`` messages, oldest first."""
        if limit <= 0:
            return []
        async with self._connect() as db:
            async with db.execute(
                "SELECT role, content, metadata, created_at FROM conversation_messages "
                "WHERE conversation_id = ? ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (conversation_id, limit),
            ) as cursor:
                rows = await cursor.fetchall()

        return [
            ConversationMessage(
                role=row["role"],
                content=row["content"],
                created_at=datetime.fromisoformat(row["created_at"]),
                metadata=json.loads(row["metadata"]),
            )
            for row in reversed(rows)
        ]

    async def append_exchange(
        self,
        conversation_id: str,
        question: str,
        answer: str,
        source_document_ids: list[str] | None = None,
    ) -> None:
        """Store a question and its answer together, in that order."""
        now = datetime.now(timezone.utc).isoformat()
        rows = [
            (str(uuid4()), conversation_id, ROLE_USER, question, "{}", now),
            (
                str(uuid4()),
                conversation_id,
                ROLE_ASSISTANT,
                answer,
                json.dumps({"sources": source_document_ids or []}),
                now,
            ),
        ]
        async with self._connect() as db:
            await db.executemany(
                "INSERT INTO conversation_messages "
                "(message_id, conversation_id, role, content, metadata, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                rows,
            )
            await db.execute(
                "UPDATE conversations SET updated_at = ? WHERE conversation_id = ?",
                (now, conversation_id),
            )
            await db.commit()
