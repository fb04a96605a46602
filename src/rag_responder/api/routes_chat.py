"""Web chat endpoint."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from rag_responder.api.dependencies import get_response_pipeline, get_tenant_directory
from rag_responder.api.rate_limiter import rate_limit
from rag_responder.models.domain import CHANNEL_WEB, InboundMessage
from rag_responder.models.schemas import ChatRequest, ChatResponse
from rag_responder.pipeline.response_pipeline import ResponsePipeline
from rag_responder.protocols.tenants import TenantDirectory

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    pipeline: ResponsePipeline = Depends(get_response_pipeline),
    tenants: TenantDirectory = Depends(get_tenant_directory),
    auth: dict = Depends(rate_limit),
) -> ChatResponse:
    tenant_id = auth["sub"]
    if request.dataset_ids:
        datasets = await tenants.get_dataset_links(tenant_id, request.dataset_ids)
    elif request.chatbot_id:
        datasets = await tenants.get_chatbot_dataset_links(tenant_id, request.chatbot_id)
    else:
        datasets = []
    # Nothing to search means nothing to answer or bill
    if not datasets:
        raise HTTPException(status_code=404, detail="No accessible datasets")

    result = await pipeline.handle(
        InboundMessage(
            message=request.message,
            session_id=request.session_id,
            channel=CHANNEL_WEB,
            tenant_id=tenant_id,
            datasets=datasets,
            chatbot_id=request.chatbot_id,
            is_first_turn=request.is_first_turn,
        )
    )
    return ChatResponse.model_validate(asdict(result))
