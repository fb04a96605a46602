"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    session_id: str
    dataset_ids: list[str] = Field(default_factory=list)
    chatbot_id: str | None = None
    is_first_turn: bool = True


class Source(BaseModel):
    document_id: str
    dataset_id: str
    title: str
    score: float


class ChatResponse(BaseModel):
    success: bool
    text: str
    sources: list[Source] = Field(default_factory=list)
    points_balance: int | None = None
    error_code: (
        Literal["timeout", "not_found", "invalid_request", "internal_error", "insufficient_points"]
        | None
    ) = None
    warning: str | None = None
    session_id: str | None = None


class PointsBalanceResponse(BaseModel):
    tenant_id: str
    balance: int
    free_trial_granted: bool
    monthly_base_amount: int
    last_recharge_at: datetime | None
    is_low: bool


class PointsTransactionOut(BaseModel):
    transaction_id: str
    type: str
    amount: int
    resulting_balance: int
    description: str
    metadata: dict
    created_at: datetime


class MonthlyUsageResponse(BaseModel):
    points_used: int
    responses: int
    input_tokens: int
    output_tokens: int
    total_cost_usd: float


class TrialGrantResponse(BaseModel):
    granted: bool
    balance: int


class HealthResponse(BaseModel):
    status: str
    providers: list[str]


# Messaging webhook (skill) payloads


class SkillUser(BaseModel):
    id: str
    type: str | None = None


class SkillUserRequest(BaseModel):
    utterance: str
    user: SkillUser
    timezone: str | None = None


class SkillBot(BaseModel):
    id: str
    name: str | None = None


class SkillRequest(BaseModel):
    userRequest: SkillUserRequest
    bot: SkillBot | None = None


class QuickReply(BaseModel):
    label: str
    action: str = "message"
    messageText: str


class SkillTemplate(BaseModel):
    outputs: list[dict]
    quickReplies: list[QuickReply] | None = None


class SkillResponse(BaseModel):
    version: str = "2.0"
    template: SkillTemplate
