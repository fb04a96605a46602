"""HTTP client for the external vector / full-text search service."""

from __future__ import annotations

import httpx

from rag_responder.exceptions import RetrievalError
from rag_responder.models.domain import DENSE, SPARSE, RetrievalCandidate
from rag_responder.observability.logger import get_logger

logger = get_logger("search_client")


class HttpSearchClient:
    """Talks to the index service that owns the embeddings and the text index.

    Both endpoints take ``{"query", "dataset_id", "limit"}`` and
    return ``{"results": [{"id", "document_id", "content", "score", "metadata"}]}``
    sorted best first.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def create(cls, base_url: str, timeout_s: float = 3.0) -> "HttpSearchClient":
        return cls(httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(timeout_s)))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def search_dense(
        self, query: str, dataset_id: str, limit: int
    ) -> list[RetrievalCandidate]:
        return await self._search("/search/dense", DENSE, query, dataset_id, limit)

    async def search_sparse(
        self, query: str, dataset_id: str, limit: int
    ) -> list[RetrievalCandidate]:
        return await self._search("/search/sparse", SPARSE, query, dataset_id, limit)

    async def _search(
        self, path: str, signal: str, query: str, dataset_id: str, limit: int
    ) -> list[RetrievalCandidate]:
        payload = {"query": query, "dataset_id": dataset_id, "limit": limit}
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
            rows = response.json().get("results", [])
        except (httpx.HTTPError, ValueError) as e:
            raise RetrievalError(f"{signal} search failed for dataset {dataset_id}: {e}") from e

        return [
            RetrievalCandidate(
                id=str(row["id"]),
                dataset_id=dataset_id,
                document_id=str(row.get("document_id", "")),
                content=row.get("content", ""),
                raw_score=float(row.get("score", 0.0)),
                signal=signal,
                metadata=row.get("metadata") or {},
            )
            for row in rows[:limit]
        ]
