"""Reciprocal Rank Fusion for merging retrieval results."""

from __future__ import annotations

from rag_responder.models.domain import DENSE, FusedResult, RetrievalCandidate

RRF_K = 60


def _collapse_duplicates(
    result_list: list[RetrievalCandidate],
) -> list[tuple[int, RetrievalCandidate]]:
    """Resolve repeated ids inside one signal's list.

    The last occurrence wins (both its rank and its candidate). The collapsed
    entries keep the position of the winning occurrence so the list stays in
    the signal's own order.
    """
    last_seen: dict[str, int] = {}
    for rank, candidate in enumerate(result_list):
        last_seen[candidate.id] = rank
    return [
        (rank, candidate)
        for rank, candidate in enumerate(result_list)
        if last_seen[candidate.id] == rank
    ]


def reciprocal_rank_fusion(
    result_lists: list[list[RetrievalCandidate]],
    limit: int,
    k: int = RRF_K,
) -> list[FusedResult]:
    """Merge multiple ranked result lists using RRF.

    Args:
        result_lists: One list per retrieval signal, each sorted best first.
        limit: Maximum number of fused results to return. ``limit <= 0``
            returns an empty list; a limit above the fused set size returns
            the whole set.
        k: RRF constant (higher = flatter contribution curve).

    Returns:
        FusedResult objects sorted by summed ``1 / (k + rank + 1)`` descending.
        Ties keep first-encounter order, so the earlier signal list wins.
    """
    if limit <= 0:
        return []

    # dict preserves insertion order: first encounter across all lists
    fused: dict[str, FusedResult] = {}
    for result_list in result_lists:
        for rank, candidate in _collapse_duplicates(result_list):
            contribution = 1.0 / (k + rank + 1)
            existing = fused.get(candidate.id)
            if existing is None:
                fused[candidate.id] = FusedResult(
                    id=candidate.id,
                    fused_score=contribution,
                    candidate=candidate,
                    dense_score=candidate.raw_score if candidate.signal == DENSE else None,
                )
                continue
            existing.fused_score += contribution
            if candidate.signal == DENSE and existing.dense_score is None:
                existing.dense_score = candidate.raw_score

    # sorted() is stable, so equal scores stay in first-encounter order
    ranked = sorted(fused.values(), key=lambda r: r.fused_score, reverse=True)
    return ranked[:limit]
