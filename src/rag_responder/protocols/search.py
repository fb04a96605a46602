"""Protocols for the external dense and sparse search backends."""

from __future__ import annotations

from typing import Protocol

from rag_responder.models.domain import RetrievalCandidate


class DenseSearcher(Protocol):
    async def search_dense(
        self, query: str, dataset_id: str, limit: int
    ) -> list[RetrievalCandidate]: ...


class SparseSearcher(Protocol):
    async def search_sparse(
        self, query: str, dataset_id: str, limit: int
    ) -> list[RetrievalCandidate]: ...
