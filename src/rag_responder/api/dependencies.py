"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from rag_responder.channels.kakao import MessagingSkillService
from rag_responder.pipeline.response_pipeline import ResponsePipeline
from rag_responder.points.ledger import PointsLedger
from rag_responder.protocols.tenants import TenantDirectory
from rag_responder.usage.token_tracker import TokenUsageTracker


def get_response_pipeline(request: Request) -> ResponsePipeline:
    return request.app.state.response_pipeline


def get_messaging_service(request: Request) -> MessagingSkillService:
    return request.app.state.messaging_service


def get_ledger(request: Request) -> PointsLedger:
    return request.app.state.ledger


def get_tenant_directory(request: Request) -> TenantDirectory:
    return request.app.state.tenant_directory


def get_usage_tracker(request: Request) -> TokenUsageTracker:
    return request.app.state.usage_tracker
