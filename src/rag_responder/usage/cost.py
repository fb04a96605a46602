"""Token cost calculation from per-million-token prices."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ModelPrice:
    input_per_million: float
    output_per_million: float


@dataclass(frozen=True)
class CostBreakdown:
    input_cost_usd: float
    output_cost_usd: float

    @property
    def total_cost_usd(self) -> float:
        return self.input_cost_usd + self.output_cost_usd


ZERO_COST = CostBreakdown(0.0, 0.0)

# USD per 1M tokens, keyed by "provider:model"
DEFAULT_PRICES: dict[str, ModelPrice] = {
    "google:gemini-2.5-flash-lite": ModelPrice(0.10, 0.40),
    "google:gemini-2.5-flash": ModelPrice(0.30, 2.50),
    "openai:gpt-4o-mini": ModelPrice(0.15, 0.60),
    "openai:gpt-4o": ModelPrice(2.50, 10.00),
}


def calculate_cost(input_tokens: int, output_tokens: int, price: ModelPrice) -> CostBreakdown:
    return CostBreakdown(
        input_cost_usd=(input_tokens / 1_000_000) * price.input_per_million,
        output_cost_usd=(output_tokens / 1_000_000) * price.output_per_million,
    )
