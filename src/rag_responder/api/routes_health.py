"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

from rag_responder.models.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    providers = [p for p in request.app.state.providers if await p.is_available()]
    return HealthResponse(
        status="ok" if providers else "degraded",
        providers=[f"{p.name}:{p.model}" for p in providers],
    )
