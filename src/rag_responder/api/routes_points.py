"""Points balance, history and usage endpoints for the authenticated tenant."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from rag_responder.api.dependencies import get_ledger, get_usage_tracker
from rag_responder.api.rate_limiter import rate_limit
from rag_responder.models.schemas import (
    MonthlyUsageResponse,
    PointsBalanceResponse,
    PointsTransactionOut,
    TrialGrantResponse,
)
from rag_responder.points.ledger import PointsLedger
from rag_responder.usage.token_tracker import TokenUsageTracker

router = APIRouter(prefix="/points")


@router.get("/balance", response_model=PointsBalanceResponse)
async def balance(
    ledger: PointsLedger = Depends(get_ledger),
    auth: dict = Depends(rate_limit),
) -> PointsBalanceResponse:
    account = await ledger.get_balance_info(auth["sub"])
    return PointsBalanceResponse(
        tenant_id=account.tenant_id,
        balance=account.balance,
        free_trial_granted=account.free_trial_granted,
        monthly_base_amount=account.monthly_base_amount,
        last_recharge_at=account.last_recharge_at,
        is_low=account.is_low,
    )


@router.get("/transactions", response_model=list[PointsTransactionOut])
async def transactions(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ledger: PointsLedger = Depends(get_ledger),
    auth: dict = Depends(rate_limit),
) -> list[PointsTransactionOut]:
    rows = await ledger.get_transactions(auth["sub"], limit=limit, offset=offset)
    return [
        PointsTransactionOut(
            transaction_id=tx.transaction_id,
            type=tx.type,
            amount=tx.amount,
            resulting_balance=tx.resulting_balance,
            description=tx.description,
            metadata=tx.metadata,
            created_at=tx.created_at,
        )
        for tx in rows
    ]


@router.get("/usage", response_model=MonthlyUsageResponse)
async def usage(
    ledger: PointsLedger = Depends(get_ledger),
    tracker: TokenUsageTracker = Depends(get_usage_tracker),
    auth: dict = Depends(rate_limit),
) -> MonthlyUsageResponse:
    tenant_id = auth["sub"]
    points_used, responses = await ledger.get_monthly_usage(tenant_id)
    tokens = await tracker.monthly_summary(tenant_id)
    return MonthlyUsageResponse(
        points_used=points_used,
        responses=responses,
        input_tokens=tokens["input_tokens"],
        output_tokens=tokens["output_tokens"],
        total_cost_usd=round(tokens["total_cost_usd"], 6),
    )


@router.post("/trial", response_model=TrialGrantResponse)
async def grant_trial(
    ledger: PointsLedger = Depends(get_ledger),
    auth: dict = Depends(rate_limit),
) -> TrialGrantResponse:
    grant = await ledger.grant_free_trial(auth["sub"])
    return TrialGrantResponse(granted=grant.granted, balance=grant.balance)
