"""Admission control over the per-tenant points ledger.

``validate`` is the pre-flight check, ``debit`` is the only way a balance goes
down, and every credit path funnels through ``credit``. Storage failures
surface as ``LedgerError``; nothing here treats an error as permission to
proceed.
"""

from __future__ import annotations

from datetime import datetime, timezone

from rag_responder.exceptions import InsufficientPoints
from rag_responder.models.domain import (
    AdmissionDecision,
    LedgerEntryResult,
    PointsAccount,
    PointsTransaction,
    TrialGrantResult,
)
from rag_responder.observability.logger import get_logger
from rag_responder.points.constants import (
    CREDIT_TYPES,
    FREE_TRIAL_POINTS,
    INSUFFICIENT_POINTS,
    LOW_BALANCE_WARNING,
    LOW_POINTS_THRESHOLD,
    POINTS_PER_RESPONSE,
    TransactionType,
    default_description,
)
from rag_responder.storage.sqlite_ledger_store import SQLiteLedgerStore

logger = get_logger("points_ledger")


class PointsLedger:
    def __init__(
        self,
        store: SQLiteLedgerStore,
        points_per_response: int = POINTS_PER_RESPONSE,
        low_balance_threshold: int = LOW_POINTS_THRESHOLD,
        free_trial_points: int = FREE_TRIAL_POINTS,
    ) -> None:
        self._store = store
        self._points_per_response = points_per_response
        self._low_threshold = low_balance_threshold
        self._free_trial_points = free_trial_points

    @property
    def points_per_response(self) -> int:
        return self._points_per_response

    def low_balance_warning(self, remaining: int) -> str | None:
        """Advisory for a balance left after a charge.

        An exhausted balance (0) gets no warning: the next request is simply
        refused with INSUFFICIENT_POINTS.
        """
        if 0 < remaining <= self._low_threshold:
            return LOW_BALANCE_WARNING
        return None

    async def validate(
        self,
        tenant_id: str,
        required: int | None = None,
        timeout_s: float | None = None,
    ) -> AdmissionDecision:
        required = self._points_per_response if required is None else required
        balance = await self._store.get_balance(tenant_id, timeout_s=timeout_s)

        if balance < required:
            logger.warning(
                "admission_denied",
                tenant_id=tenant_id,
                current_balance=balance,
                required=required,
            )
            return AdmissionDecision(
                can_proceed=False,
                current_balance=balance,
                required=required,
                reason=INSUFFICIENT_POINTS,
            )

        return AdmissionDecision(
            can_proceed=True,
            current_balance=balance,
            required=required,
            warning=self.low_balance_warning(balance - required),
        )

    async def debit(
        self,
        tenant_id: str,
        amount: int | None = None,
        metadata: dict | None = None,
        timeout_s: float | None = None,
    ) -> LedgerEntryResult:
        """Charge one AI response. Raises InsufficientPoints if the conditional update loses.

        ``timeout_s`` bounds the wait for a locked ledger; LedgerError when it runs out.
        """
        amount = self._points_per_response if amount is None else amount
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        metadata = metadata or {}
        result = await self._store.conditional_debit(
            tenant_id,
            amount,
            TransactionType.AI_RESPONSE,
            default_description(TransactionType.AI_RESPONSE),
            {
                "chatbot_id": metadata.get("chatbot_id"),
                "conversation_id": metadata.get("conversation_id") or metadata.get("session_id"),
                "channel": metadata.get("channel"),
            },
            timeout_s=timeout_s,
        )
        if result is None:
            balance = await self._store.get_balance(tenant_id, timeout_s=timeout_s)
            logger.warning(
                "debit_rejected",
                tenant_id=tenant_id,
                amount=amount,
                current_balance=balance,
            )
            raise InsufficientPoints(tenant_id, balance, amount)

        logger.info(
            "points_debited",
            tenant_id=tenant_id,
            amount=amount,
            new_balance=result.new_balance,
            channel=metadata.get("channel"),
        )
        return result

    async def credit(
        self,
        tenant_id: str,
        amount: int,
        transaction_type: str,
        metadata: dict | None = None,
        description: str | None = None,
    ) -> LedgerEntryResult:
        if amount <= 0:
            raise ValueError("Credit amount must be positive")
        if transaction_type not in CREDIT_TYPES:
            raise ValueError(f"Not a credit transaction type: {transaction_type}")

        description = description or default_description(transaction_type)
        metadata = metadata or {}

        if transaction_type == TransactionType.FREE_TRIAL:
            grant = await self._store.grant_once(
                tenant_id, amount, transaction_type, description, metadata
            )
            if not grant.granted:
                logger.info("trial_grant_skipped", tenant_id=tenant_id, balance=grant.balance)
            return LedgerEntryResult(new_balance=grant.balance, transaction_id=grant.transaction_id)

        result = await self._store.credit(
            tenant_id,
            amount,
            transaction_type,
            description,
            metadata,
            record_recharge=transaction_type == TransactionType.SUBSCRIPTION_CHARGE,
        )
        logger.info(
            "points_credited",
            tenant_id=tenant_id,
            amount=amount,
            type=transaction_type,
            new_balance=result.new_balance,
        )
        return result

    async def charge(
        self,
        tenant_id: str,
        amount: int,
        transaction_type: str = TransactionType.PURCHASE,
        metadata: dict | None = None,
        description: str | None = None,
    ) -> LedgerEntryResult:
        return await self.credit(tenant_id, amount, transaction_type, metadata, description)

    async def refund(
        self,
        tenant_id: str,
        amount: int,
        metadata: dict | None = None,
        description: str | None = None,
    ) -> LedgerEntryResult:
        return await self.credit(tenant_id, amount, TransactionType.REFUND, metadata, description)

    async def grant_free_trial(self, tenant_id: str) -> TrialGrantResult:
        grant = await self._store.grant_once(
            tenant_id,
            self._free_trial_points,
            TransactionType.FREE_TRIAL,
            default_description(TransactionType.FREE_TRIAL),
            {"reason": "new_signup"},
        )
        logger.info("trial_grant", tenant_id=tenant_id, granted=grant.granted, balance=grant.balance)
        return grant

    async def get_balance(self, tenant_id: str) -> int:
        return await self._store.get_balance(tenant_id)

    async def get_balance_info(self, tenant_id: str) -> PointsAccount:
        account = await self._store.get_account(tenant_id)
        if account is None:
            return PointsAccount(
                tenant_id=tenant_id,
                balance=0,
                free_trial_granted=False,
                monthly_base_amount=0,
                last_recharge_at=None,
                is_low=True,
            )
        account.is_low = account.balance <= self._low_threshold
        return account

    async def get_transactions(
        self,
        tenant_id: str,
        limit: int = 20,
        offset: int = 0,
        from_date: datetime | None = None,
    ) -> list[PointsTransaction]:
        return await self._store.list_transactions(tenant_id, limit, offset, from_date)

    async def get_monthly_usage(self, tenant_id: str) -> tuple[int, int]:
        """Points spent on AI responses since the first of the month, and how many responses."""
        start_of_month = datetime.now(timezone.utc).replace(
            day=1, hour=0, minute=0, second=0, microsecond=0
        )
        total, count = await self._store.sum_amounts(
            tenant_id, TransactionType.AI_RESPONSE, since=start_of_month
        )
        return abs(total), count

    async def ledger_total(self, tenant_id: str) -> int:
        """Sum of every transaction delta. Equals the live balance when the ledger is consistent."""
        total, _ = await self._store.sum_amounts(tenant_id)
        return total
