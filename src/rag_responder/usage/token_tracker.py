"""Token usage tracking for successful generations."""

from __future__ import annotations

from datetime import datetime, timezone

from rag_responder.observability.logger import get_logger
from rag_responder.storage.sqlite_usage_store import SQLiteUsageStore
from rag_responder.usage.cost import DEFAULT_PRICES, ZERO_COST, ModelPrice, calculate_cost

logger = get_logger("token_tracker")


class TokenUsageTracker:
    def __init__(
        self,
        store: SQLiteUsageStore,
        prices: dict[str, ModelPrice] | None = None,
    ) -> None:
        self._store = store
        self._prices = prices if prices is not None else DEFAULT_PRICES

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
    ) -> None:
        price = self._prices.get(f"{provider}:{model}")
        if price is None:
            logger.warning("model_price_not_found", provider=provider, model=model)
            cost = ZERO_COST
        else:
            cost = calculate_cost(input_tokens, output_tokens, price)

        await self._store.save_usage(
            tenant_id=tenant_id,
            provider=provider,
            model=model,
            feature_type=feature_type,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=cost,
            chatbot_id=chatbot_id,
            conversation_id=conversation_id,
        )
        logger.info(
            "token_usage_tracked",
            tenant_id=tenant_id,
            provider=provider,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=round(cost.total_cost_usd, 6),
        )

    async def monthly_summary(self, tenant_id: str) -> dict:
        start_of_month = datetime.now(timezone.utc).replace(
            day=1, hour=0, minute=0, second=0, microsecond=0
        )
        return await self._store.monthly_totals(tenant_id, start_of_month)
