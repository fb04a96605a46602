"""SQLite-backed token usage log."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import aiosqlite

from rag_responder.storage.migrations import initialize_usage_db
from rag_responder.usage.cost import CostBreakdown


class SQLiteUsageStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_usage_db(self._db_path)

    async def save_usage(
        self,
        tenant_id: str,
        provider: str,
        model: str,
        feature_type: str,
        input_tokens: int,
        output_tokens: int,
        cost: CostBreakdown,
        chatbot_id: str | None = None,
        conversation_id: str | None = None,
    ) -> str:
        usage_id = str(uuid4())
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT INTO token_usage "
                "(usage_id, tenant_id, chatbot_id, conversation_id, provider, model, feature_type, "
                "input_tokens, output_tokens, input_cost_usd, output_cost_usd, total_cost_usd, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    usage_id,
                    tenant_id,
                    chatbot_id,
                    conversation_id,
                    provider,
                    model,
                    feature_type,
                    input_tokens,
                    output_tokens,
                    cost.input_cost_usd,
                    cost.output_cost_usd,
                    cost.total_cost_usd,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            await db.commit()
        return usage_id

    async def monthly_totals(self, tenant_id: str, since: datetime) -> dict:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT COALESCE(SUM(input_tokens), 0) AS input_tokens, "
                "COALESCE(SUM(output_tokens), 0) AS output_tokens, "
                "COALESCE(SUM(total_cost_usd), 0.0) AS total_cost_usd, "
                "COUNT(*) AS calls "
                "FROM token_usage WHERE tenant_id = ? AND created_at >= ?",
                (tenant_id, since.astimezone(timezone.utc).isoformat()),
            ) as cursor:
                row = await cursor.fetchone()
                return {
                    "input_tokens": row["input_tokens"],
                    "output_tokens": row["output_tokens"],
                    "total_cost_usd": row["total_cost_usd"],
                    "calls": row["calls"],
                }
