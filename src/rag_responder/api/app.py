"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rag_responder.api.auth import router as auth_router
from rag_responder.api.middleware import RequestTimingMiddleware
from rag_responder.api.routes_chat import router as chat_router
from rag_responder.api.routes_health import router as health_router
from rag_responder.api.routes_messaging import router as messaging_router
from rag_responder.api.routes_points import router as points_router
from rag_responder.channels.kakao import MessagingSkillService
from rag_responder.config.settings import Settings
from rag_responder.exceptions import LedgerError, RAGResponderError
from rag_responder.generation.answer_generator import AnswerGenerator
from rag_responder.generation.orchestrator import GenerationOrchestrator
from rag_responder.generation.providers import build_provider_registry
from rag_responder.observability.logger import get_logger, setup_logging
from rag_responder.pipeline.response_pipeline import ResponsePipeline
from rag_responder.points.ledger import PointsLedger
from rag_responder.retrieval.hybrid_retriever import HybridRetriever
from rag_responder.retrieval.search_client import HttpSearchClient
from rag_responder.storage.sqlite_conversation_store import SQLiteConversationStore
from rag_responder.storage.sqlite_ledger_store import SQLiteLedgerStore
from rag_responder.storage.sqlite_tenant_store import SQLiteTenantStore
from rag_responder.storage.sqlite_usage_store import SQLiteUsageStore
from rag_responder.usage.token_tracker import TokenUsageTracker

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    setup_logging()

    # Ensure data directories exist
    for path in [
        settings.ledger_db_path,
        settings.usage_db_path,
        settings.tenant_db_path,
        settings.conversation_db_path,
    ]:
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    # Storage
    ledger_store = SQLiteLedgerStore(settings.ledger_db_path)
    await ledger_store.initialize()
    usage_store = SQLiteUsageStore(settings.usage_db_path)
    await usage_store.initialize()
    tenant_store = SQLiteTenantStore(settings.tenant_db_path)
    await tenant_store.initialize()
    conversation_store = SQLiteConversationStore(settings.conversation_db_path)
    await conversation_store.initialize()

    # Admission control
    ledger = PointsLedger(
        ledger_store,
        points_per_response=settings.points_per_response,
        low_balance_threshold=settings.low_points_threshold,
        free_trial_points=settings.free_trial_points,
    )

    # Retrieval
    search_client = HttpSearchClient.create(settings.search_service_url, settings.search_timeout_s)
    retriever = HybridRetriever(
        dense_searcher=search_client,
        sparse_searcher=search_client,
        rrf_k=settings.rrf_k,
        candidate_multiplier=settings.retrieval_candidate_multiplier,
        weight_min=settings.dataset_weight_min,
        weight_max=settings.dataset_weight_max,
    )

    # Generation (provider registry is fixed for the process lifetime)
    providers = build_provider_registry(settings)
    usage_tracker = TokenUsageTracker(usage_store)
    orchestrator = GenerationOrchestrator(providers, usage_tracker=usage_tracker)

    pipeline = ResponsePipeline(
        retriever=retriever,
        answer_generator=AnswerGenerator(orchestrator),
        ledger=ledger,
        settings=settings,
        conversations=conversation_store,
    )

    app.state.providers = providers
    app.state.ledger = ledger
    app.state.usage_tracker = usage_tracker
    app.state.tenant_directory = tenant_store
    app.state.response_pipeline = pipeline
    app.state.messaging_service = MessagingSkillService(pipeline, tenant_store, settings)

    logger.info(
        "startup_complete",
        providers=[f"{p.priority}:{p.name}:{p.model}" for p in providers],
        messaging_timeout_ms=settings.messaging_timeout_ms,
    )

    yield

    await pipeline.aclose()
    await orchestrator.drain()
    await search_client.aclose()
    logger.info("shutdown_complete")


async def _ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    logger.error("ledger_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse({"detail": "Points ledger unavailable"}, status_code=503)


async def _domain_error_handler(request: Request, exc: RAGResponderError) -> JSONResponse:
    logger.error("unhandled_domain_error", path=request.url.path, error=str(exc))
    return JSONResponse({"detail": "Internal error"}, status_code=500)


def create_app(settings: Settings | None = None) -> FastAPI:
    app = FastAPI(
        title="RAG Responder",
        version="1.0.0",
        description="Multi-tenant query-time RAG response pipeline",
        lifespan=lifespan,
    )
    app.state.settings = settings or Settings()
    app.add_middleware(RequestTimingMiddleware)
    app.add_exception_handler(LedgerError, _ledger_error_handler)
    app.add_exception_handler(RAGResponderError, _domain_error_handler)
    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router)
    app.include_router(chat_router, tags=["chat"])
    app.include_router(messaging_router, tags=["messaging"])
    app.include_router(points_router, tags=["points"])
    return app
