"""Hybrid retriever: concurrent dense + sparse search per dataset with RRF fusion."""

from __future__ import annotations

import asyncio
import time

from rag_responder.exceptions import RetrievalUnavailable
from rag_responder.models.domain import (
    DatasetLink,
    FusedResult,
    RetrievalCandidate,
    SignalResults,
)
from rag_responder.observability.logger import get_logger
from rag_responder.protocols.search import DenseSearcher, SparseSearcher
from rag_responder.retrieval.rrf import reciprocal_rank_fusion
from rag_responder.retrieval.weighting import clamp_weight, merge_weighted

logger = get_logger("hybrid_retriever")


class HybridRetriever:
    def __init__(
        self,
        dense_searcher: DenseSearcher,
        sparse_searcher: SparseSearcher,
        rrf_k: int = 60,
        candidate_multiplier: int = 2,
        weight_min: float = 0.1,
        weight_max: float = 10.0,
    ) -> None:
        self._dense = dense_searcher
        self._sparse = sparse_searcher
        self._rrf_k = rrf_k
        self._multiplier = candidate_multiplier
        self._weight_min = weight_min
        self._weight_max = weight_max

    async def retrieve(
        self,
        query: str,
        datasets: list[DatasetLink],
        limit_per_signal: int,
    ) -> SignalResults:
        """Fan out both signals over every dataset and merge each signal's lists.

        A failing (dataset, signal) call is logged and dropped. Only when every
        call fails is ``RetrievalUnavailable`` raised.
        """
        if not datasets:
            logger.warning("retrieve_without_datasets")
            return SignalResults(dense=[], sparse=[])

        calls = []
        for link in datasets:
            calls.append(self._dense.search_dense(query, link.dataset_id, limit_per_signal))
            calls.append(self._sparse.search_sparse(query, link.dataset_id, limit_per_signal))

        outcomes = await asyncio.gather(*calls, return_exceptions=True)

        dense_parts: list[tuple[float, list[RetrievalCandidate]]] = []
        sparse_parts: list[tuple[float, list[RetrievalCandidate]]] = []
        failed = 0
        for i, link in enumerate(datasets):
            weight = clamp_weight(link.weight, self._weight_min, self._weight_max)
            for signal, outcome, parts in (
                ("dense", outcomes[2 * i], dense_parts),
                ("sparse", outcomes[2 * i + 1], sparse_parts),
            ):
                if isinstance(outcome, BaseException):
                    failed += 1
                    logger.warning(
                        "signal_search_failed",
                        signal=signal,
                        dataset_id=link.dataset_id,
                        error=str(outcome),
                    )
                    continue
                parts.append((weight, outcome))

        if failed == len(calls):
            raise RetrievalUnavailable(
                f"All {len(calls)} retrieval calls failed for {len(datasets)} dataset(s)"
            )

        return SignalResults(
            dense=merge_weighted(dense_parts, limit_per_signal),
            sparse=merge_weighted(sparse_parts, limit_per_signal),
            failed_calls=failed,
            total_calls=len(calls),
        )

    async def search(
        self,
        query: str,
        datasets: list[DatasetLink],
        limit: int = 5,
    ) -> list[FusedResult]:
        """Retrieve ``multiplier * limit`` candidates per signal and fuse them down to ``limit``."""
        start = time.monotonic()
        signals = await self.retrieve(query, datasets, limit * self._multiplier)
        fused = reciprocal_rank_fusion(signals.as_lists(), limit=limit, k=self._rrf_k)

        logger.info(
            "hybrid_search_completed",
            dataset_ids=[d.dataset_id for d in datasets],
            query_length=len(query),
            dense_count=len(signals.dense),
            sparse_count=len(signals.sparse),
            hybrid_count=len(fused),
            failed_calls=signals.failed_calls,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
            top_results=[
                {"rank": i + 1, "score": round(r.fused_score, 5), "dataset_id": r.dataset_id}
                for i, r in enumerate(fused[:3])
            ],
        )
        return fused
