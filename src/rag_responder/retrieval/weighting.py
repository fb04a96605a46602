"""Per-dataset weighting of signal results before fusion."""

from __future__ import annotations

from rag_responder.models.domain import RetrievalCandidate


def clamp_weight(weight: float, minimum: float = 0.1, maximum: float = 10.0) -> float:
    return max(minimum, min(maximum, weight))


def merge_weighted(
    per_dataset: list[tuple[float, list[RetrievalCandidate]]],
    limit: int,
) -> list[RetrievalCandidate]:
    """Merge one signal's per-dataset lists into a single ranked list.

    Each candidate's raw score is multiplied by its dataset weight and the
    merged list is ordered by that weighted score, best first. Raw scores are
    comparable across datasets within one signal, never across signals, so
    the same procedure is applied to dense and sparse independently and RRF
    then only sees ranks. Negative raw scores count as zero, so a larger
    weight can never push a candidate down. Ties keep dataset order, then
    per-dataset order.
    """
    weighted: list[tuple[float, int, RetrievalCandidate]] = []
    for weight, candidates in per_dataset:
        for candidate in candidates:
            weighted.append((max(candidate.raw_score, 0.0) * weight, len(weighted), candidate))

    weighted.sort(key=lambda item: (-item[0], item[1]))
    return [candidate for _, _, candidate in weighted[:limit]] if limit > 0 else []
