"""Tests for the HTTP search client and the provider registry."""

import json

import httpx
import pytest

from rag_responder.exceptions import RetrievalError
from rag_responder.generation.providers import build_provider_registry
from rag_responder.models.domain import DENSE, SPARSE
from rag_responder.retrieval.search_client import HttpSearchClient


def _client(handler):
    return HttpSearchClient(
        httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://search")
    )


async def test_dense_search_parses_results():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "results": [
                    {"id": "c1", "document_id": "d1", "content": "alpha", "score": 0.91},
                    {"id": 2, "document_id": "d2", "content": "beta", "score": "0.5"},
                ]
            },
        )

    client = _client(handler)
    results = await client.search_dense("what is alpha", "ds-1", 5)
    await client.aclose()

    assert seen["path"] == "/search/dense"
    assert seen["body"] == {"query": "what is alpha", "dataset_id": "ds-1", "limit": 5}
    assert [r.id for r in results] == ["c1", "2"]
    assert results[0].signal == DENSE
    assert results[0].dataset_id == "ds-1"
    assert results[1].raw_score == pytest.approx(0.5)


async def test_sparse_search_respects_limit():
    def handler(request: httpx.Request) -> httpx.Response:
        rows = [{"id": f"c{i}", "score": 10 - i} for i in range(10)]
        return httpx.Response(200, json={"results": rows})

    client = _client(handler)
    results = await client.search_sparse("q", "ds-1", 3)
    assert [r.id for r in results] == ["c0", "c1", "c2"]
    assert all(r.signal == SPARSE for r in results)


async def test_server_error_becomes_retrieval_error():
    client = _client(lambda request: httpx.Response(503, json={"detail": "down"}))
    with pytest.raises(RetrievalError):
        await client.search_dense("q", "ds-1", 3)


async def test_invalid_json_becomes_retrieval_error():
    client = _client(lambda request: httpx.Response(200, content=b"not json"))
    with pytest.raises(RetrievalError):
        await client.search_sparse("q", "ds-1", 3)


async def test_provider_registry_order_and_availability(settings):
    settings.openai_api_key = ""
    providers = build_provider_registry(settings)

    assert [(p.name, p.priority) for p in providers] == [("google", 1), ("openai", 2)]
    assert providers[0].model == settings.gemini_model
    assert await providers[0].is_available() is True
    assert await providers[1].is_available() is False
