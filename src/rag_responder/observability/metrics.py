"""Metric recording helpers for traces."""

from __future__ import annotations

from rag_responder.models.domain import FusedResult, GenerationOutcome
from rag_responder.observability.logger import get_logger

logger = get_logger("metrics")


def log_retrieval_metrics(
    trace_id: str,
    evidence: list[FusedResult],
    dataset_count: int,
) -> None:
    logger.info(
        "retrieval_metrics",
        trace_id=trace_id,
        num_results=len(evidence),
        top_scores=[round(r.fused_score, 5) for r in evidence[:5]],
        unique_docs=len({r.document_id for r in evidence}),
        dataset_count=dataset_count,
    )


def log_generation_metrics(trace_id: str, outcome: GenerationOutcome) -> None:
    logger.info(
        "generation_metrics",
        trace_id=trace_id,
        provider=outcome.provider_name,
        model=outcome.model_id,
        input_tokens=outcome.input_tokens,
        output_tokens=outcome.output_tokens,
        failed_providers=[e.provider_name for e in outcome.errors],
        skipped_providers=outcome.skipped,
    )


def log_billing(
    trace_id: str,
    tenant_id: str,
    amount: int,
    new_balance: int,
    warning: str | None,
) -> None:
    logger.info(
        "billing_metrics",
        trace_id=trace_id,
        tenant_id=tenant_id,
        amount=amount,
        new_balance=new_balance,
        warning=warning,
    )


def log_latency(trace_id: str, stage: str, duration_ms: float) -> None:
    logger.info(
        "latency",
        trace_id=trace_id,
        stage=stage,
        duration_ms=round(duration_ms, 2),
    )
