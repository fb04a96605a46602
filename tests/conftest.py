"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

import pytest

from rag_responder.config.settings import Settings
from rag_responder.exceptions import RetrievalError
from rag_responder.models.domain import (
    DENSE,
    SPARSE,
    GenerationOptions,
    ProviderResult,
    RetrievalCandidate,
)
from rag_responder.points.ledger import PointsLedger
from rag_responder.storage.sqlite_conversation_store import SQLiteConversationStore
from rag_responder.storage.sqlite_ledger_store import SQLiteLedgerStore


def make_candidate(
    cid: str,
    signal: str = DENSE,
    score: float = 0.5,
    dataset_id: str = "ds-1",
    document_id: str | None = None,
    content: str | None = None,
) -> RetrievalCandidate:
    return RetrievalCandidate(
        id=cid,
        dataset_id=dataset_id,
        document_id=document_id or f"doc-{cid}",
        content=content or f"Content of chunk {cid}.",
        raw_score=score,
        signal=signal,
    )


class FakeSearcher:
    """Dense + sparse search backend keyed by dataset id."""

    def __init__(
        self,
        dense: dict[str, list[RetrievalCandidate]] | None = None,
        sparse: dict[str, list[RetrievalCandidate]] | None = None,
        failing: set[tuple[str, str]] | None = None,
        delay: float = 0.0,
    ) -> None:
        self._dense = dense or {}
        self._sparse = sparse or {}
        self._failing = failing or set()
        self._delay = delay
        self.calls: list[tuple[str, str, int]] = []

    async def _search(self, signal, results, dataset_id, limit):
        self.calls.append((signal, dataset_id, limit))
        if self._delay:
            await asyncio.sleep(self._delay)
        if (signal, dataset_id) in self._failing:
            raise RetrievalError(f"{signal} backend down for {dataset_id}")
        return list(results.get(dataset_id, []))[:limit]

    async def search_dense(self, query, dataset_id, limit):
        return await self._search(DENSE, self._dense, dataset_id, limit)

    async def search_sparse(self, query, dataset_id, limit):
        return await self._search(SPARSE, self._sparse, dataset_id, limit)


class FakeProvider:
    def __init__(
        self,
        name: str,
        priority: int,
        text: str = "answer",
        available: bool = True,
        error: Exception | None = None,
        delay: float = 0.0,
        model: str | None = None,
    ) -> None:
        self.name = name
        self.model = model or f"{name}-model"
        self.priority = priority
        self._text = text
        self._available = available
        self._error = error
        self._delay = delay
        self.calls: list[tuple[str, str, GenerationOptions]] = []

    async def is_available(self) -> bool:
        return self._available

    async def generate(self, system_prompt, user_prompt, options) -> ProviderResult:
        self.calls.append((system_prompt, user_prompt, options))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return ProviderResult(text=self._text, input_tokens=120, output_tokens=30)


class RecordingTracker:
    def __init__(self, error: Exception | None = None, delay: float = 0.0) -> None:
        self.records: list[dict] = []
        self._error = error
        self._delay = delay

    async def track(self, **kwargs) -> None:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        self.records.append(kwargs)


@pytest.fixture
def tmp_dir():
    """Create a temporary directory."""
    return tempfile.mkdtemp()


@pytest.fixture
def settings(tmp_dir):
    """Test settings with temp paths."""
    return Settings(
        openai_api_key="test-key",
        google_api_key="test-key",
        ledger_db_path=str(Path(tmp_dir) / "ledger.db"),
        usage_db_path=str(Path(tmp_dir) / "usage.db"),
        tenant_db_path=str(Path(tmp_dir) / "tenants.db"),
        conversation_db_path=str(Path(tmp_dir) / "conversations.db"),
        messaging_timeout_ms=200,
    )


@pytest.fixture
async def ledger(settings):
    store = SQLiteLedgerStore(settings.ledger_db_path)
    await store.initialize()
    return PointsLedger(
        store,
        points_per_response=1,
        low_balance_threshold=100,
        free_trial_points=500,
    )


@pytest.fixture
async def conversations(settings):
    store = SQLiteConversationStore(settings.conversation_db_path)
    await store.initialize()
    return store
