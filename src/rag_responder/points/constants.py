"""Points ledger constants."""

from __future__ import annotations

POINTS_PER_RESPONSE = 1
LOW_POINTS_THRESHOLD = 100
FREE_TRIAL_POINTS = 500

INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"
LOW_BALANCE_WARNING = "LOW_BALANCE_WARNING"


class TransactionType:
    SUBSCRIPTION_CHARGE = "subscription_charge"
    PURCHASE = "purchase"
    AI_RESPONSE = "ai_response"
    FREE_TRIAL = "free_trial"
    REFUND = "refund"
    ADMIN_ADJUSTMENT = "admin_adjustment"


CREDIT_TYPES = frozenset(
    {
        TransactionType.SUBSCRIPTION_CHARGE,
        TransactionType.PURCHASE,
        TransactionType.FREE_TRIAL,
        TransactionType.REFUND,
        TransactionType.ADMIN_ADJUSTMENT,
    }
)

DEFAULT_DESCRIPTIONS = {
    TransactionType.SUBSCRIPTION_CHARGE: "Monthly points recharge",
    TransactionType.PURCHASE: "Additional points purchase",
    TransactionType.AI_RESPONSE: "AI response",
    TransactionType.FREE_TRIAL: "Free trial points (new signup)",
    TransactionType.REFUND: "Points refund",
    TransactionType.ADMIN_ADJUSTMENT: "Admin adjustment",
}


def default_description(transaction_type: str) -> str:
    return DEFAULT_DESCRIPTIONS.get(transaction_type, "Points change")
