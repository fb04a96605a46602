"""Tests for Pydantic schemas."""

from dataclasses import asdict

import pytest
from pydantic import ValidationError

from rag_responder.models.domain import PipelineResult, SourceRef
from rag_responder.models.schemas import ChatRequest, ChatResponse, SkillRequest


def test_chat_request_defaults():
    req = ChatRequest(message="What is the refund policy?", session_id="s-1")
    assert req.dataset_ids == []
    assert req.is_first_turn is True
    assert req.chatbot_id is None


def test_chat_request_rejects_empty_message():
    with pytest.raises(ValidationError):
        ChatRequest(message="", session_id="s-1")


def test_chat_response_from_pipeline_result():
    result = PipelineResult(
        success=True,
        text="Refunds take 5 days.",
        sources=[SourceRef(document_id="d1", dataset_id="ds-1", title="Refunds", score=0.03)],
        points_balance=42,
        warning="LOW_BALANCE_WARNING",
        session_id="s-1",
    )
    resp = ChatResponse.model_validate(asdict(result))
    data = resp.model_dump()
    assert data["sources"][0]["title"] == "Refunds"
    assert data["points_balance"] == 42
    assert data["error_code"] is None


def test_chat_response_rejects_unknown_error_code():
    with pytest.raises(ValidationError):
        ChatResponse(success=False, text="nope", error_code="exploded")


def test_skill_request_parses_platform_payload():
    req = SkillRequest.model_validate(
        {
            "intent": {"id": "i1", "name": "fallback"},
            "userRequest": {
                "timezone": "Asia/Seoul",
                "utterance": "opening hours?",
                "user": {"id": "abc123", "type": "botUserKey", "properties": {}},
            },
            "bot": {"id": "bot-1", "name": "Shop"},
            "action": {"params": {}},
        }
    )
    assert req.userRequest.utterance == "opening hours?"
    assert req.bot.id == "bot-1"


def test_skill_request_requires_user():
    with pytest.raises(ValidationError):
        SkillRequest.model_validate({"userRequest": {"utterance": "hi"}})
