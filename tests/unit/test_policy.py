"""Tests for channel policy resolution and prompt building."""

from datetime import datetime, timezone

import pytest

from rag_responder.channels.messages import DEFAULT_WELCOME_MESSAGE
from rag_responder.channels.policy import resolve_policy
from rag_responder.exceptions import ConfigurationError
from rag_responder.generation.prompt_templates import (
    PROMPT_FIRST_TURN,
    PROMPT_FOLLOW_UP,
    PROMPT_MESSAGING,
    build_system_prompt,
    build_user_prompt,
    format_history,
)
from rag_responder.models.domain import (
    CHANNEL_MESSAGING,
    CHANNEL_WEB,
    ROLE_ASSISTANT,
    ROLE_USER,
    ConversationMessage,
    FusedResult,
)
from tests.conftest import make_candidate


def test_web_policy_has_no_limits(settings):
    policy = resolve_policy(CHANNEL_WEB, settings)
    assert policy.max_wall_clock_ms is None
    assert policy.max_output_chars is None
    assert policy.prompt_variant == PROMPT_FIRST_TURN
    assert policy.welcome_message == DEFAULT_WELCOME_MESSAGE


def test_web_follow_up_variant(settings):
    assert resolve_policy(CHANNEL_WEB, settings, is_first_turn=False).prompt_variant == PROMPT_FOLLOW_UP


def test_messaging_policy_defaults(settings):
    policy = resolve_policy(CHANNEL_MESSAGING, settings)
    assert policy.max_wall_clock_ms == settings.messaging_timeout_ms
    assert policy.max_output_chars == 300
    assert policy.prompt_variant == PROMPT_MESSAGING


def test_messaging_tenant_length_capped_by_platform(settings):
    assert resolve_policy(CHANNEL_MESSAGING, settings, max_response_length=200).max_output_chars == 200
    assert resolve_policy(CHANNEL_MESSAGING, settings, max_response_length=5000).max_output_chars == 1000


def test_messaging_timeout_must_fit_platform_deadline(settings):
    settings.messaging_timeout_ms = 5000
    with pytest.raises(ConfigurationError):
        resolve_policy(CHANNEL_MESSAGING, settings)


def test_unknown_channel_rejected(settings):
    with pytest.raises(ConfigurationError):
        resolve_policy("fax", settings)


def test_messaging_prompt_mentions_length_budget():
    prompt = build_system_prompt(PROMPT_MESSAGING, 300)
    assert "300" in prompt


def test_user_prompt_numbers_evidence():
    evidence = [
        FusedResult(id="a", fused_score=0.03, candidate=make_candidate("a", content="Alpha facts")),
        FusedResult(id="b", fused_score=0.02, candidate=make_candidate("b", content="Beta facts")),
    ]
    prompt = build_user_prompt("What is alpha?", evidence)
    assert "[1]" in prompt and "Alpha facts" in prompt
    assert "[2]" in prompt and "Beta facts" in prompt
    assert "What is alpha?" in prompt


def test_messaging_ledger_calls_use_short_busy_timeout(settings):
    assert resolve_policy(CHANNEL_MESSAGING, settings).ledger_timeout_s == 0.5
    assert resolve_policy(CHANNEL_WEB, settings).ledger_timeout_s is None


def test_user_prompt_includes_previous_turns():
    now = datetime.now(timezone.utc)
    history = [
        ConversationMessage(role=ROLE_USER, content="Do you ship abroad?", created_at=now),
        ConversationMessage(role=ROLE_ASSISTANT, content="Yes, to 20 countries.", created_at=now),
    ]
    prompt = build_user_prompt("How long does it take?", [], history)
    assert "## Previous conversation:" in prompt
    assert "User: Do you ship abroad?\nAssistant: Yes, to 20 countries." in prompt
    assert prompt.index("Previous conversation") < prompt.index("How long does it take?")


def test_empty_history_adds_nothing():
    assert format_history([]) == ""
    assert "Previous conversation" not in build_user_prompt("q", [])
