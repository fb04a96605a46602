"""Tests for the messaging webhook payload helpers."""

from rag_responder.channels import messages
from rag_responder.channels.kakao import (
    client_ip,
    error_response,
    is_allowed_source_ip,
    mask_user_id,
    to_skill_response,
)
from rag_responder.models.domain import PipelineResult


def test_client_ip_prefers_forwarded_for():
    headers = {"x-forwarded-for": "211.231.99.10, 10.0.0.1", "x-real-ip": "10.0.0.2"}
    assert client_ip(headers, "127.0.0.1") == "211.231.99.10"
    assert client_ip({"x-real-ip": "10.0.0.2"}, "127.0.0.1") == "10.0.0.2"
    assert client_ip({}, "127.0.0.1") == "127.0.0.1"
    assert client_ip({}) == "unknown"


def test_ip_allow_list(settings):
    settings.messaging_allowed_ip_prefixes = "211.231.99.,211.249.40."
    assert is_allowed_source_ip("211.231.99.10", settings)
    assert is_allowed_source_ip("127.0.0.1", settings)
    assert not is_allowed_source_ip("8.8.8.8", settings)

    settings.messaging_skip_ip_validation = True
    assert is_allowed_source_ip("8.8.8.8", settings)


def test_timeout_error_offers_retry():
    body = error_response(messages.TIMEOUT).model_dump(exclude_none=True)
    assert body["version"] == "2.0"
    assert body["template"]["outputs"][0]["simpleText"]["text"] == messages.ERROR_MESSAGES[messages.TIMEOUT]
    assert body["template"]["quickReplies"][0]["label"] == "Ask again"


def test_other_errors_have_no_quick_reply():
    body = error_response(messages.NOT_FOUND).model_dump(exclude_none=True)
    assert "quickReplies" not in body["template"]


def test_success_result_is_simple_text():
    result = PipelineResult(success=True, text="Store hours are 9 to 6.")
    body = to_skill_response(result).model_dump(exclude_none=True)
    assert body["template"]["outputs"] == [{"simpleText": {"text": "Store hours are 9 to 6."}}]


def test_response_text_capped_at_platform_limit():
    result = PipelineResult(success=True, text="x" * 1500)
    text = to_skill_response(result, 1000).template.outputs[0]["simpleText"]["text"]
    assert len(text) == 1000


def test_mask_user_id():
    assert mask_user_id("abcdef1234567890") == "abcdef12..."
