"""End-to-end tests for the response pipeline with fake search and LLM backends."""

import asyncio
import time

import aiosqlite
import pytest

from rag_responder.channels import messages
from rag_responder.exceptions import GenerationError
from rag_responder.generation.answer_generator import AnswerGenerator
from rag_responder.generation.orchestrator import GenerationOrchestrator
from rag_responder.generation.prompt_templates import WEB_FOLLOW_UP_SUFFIX
from rag_responder.models.domain import (
    CHANNEL_MESSAGING,
    CHANNEL_WEB,
    DENSE,
    SPARSE,
    DatasetLink,
    InboundMessage,
)
from rag_responder.pipeline.response_pipeline import RequestState, ResponsePipeline
from rag_responder.points.constants import LOW_BALANCE_WARNING, TransactionType
from rag_responder.retrieval.hybrid_retriever import HybridRetriever
from tests.conftest import FakeProvider, FakeSearcher, RecordingTracker, make_candidate

TENANT = "tenant-1"


def _searcher(**kwargs):
    return FakeSearcher(
        dense={
            "ds-1": [
                make_candidate("a", DENSE, 0.9, content="Opening hours are 9am to 6pm."),
                make_candidate("b", DENSE, 0.7, content="Parking is free for two hours."),
            ]
        },
        sparse={"ds-1": [make_candidate("b", SPARSE, 8.0, content="Parking is free for two hours.")]},
        **kwargs,
    )


def _message(channel=CHANNEL_WEB, text="When are you open?", **kwargs):
    return InboundMessage(
        message=text,
        session_id="session-1",
        channel=channel,
        tenant_id=TENANT,
        datasets=[DatasetLink("ds-1")],
        chatbot_id="bot-1",
        **kwargs,
    )


@pytest.fixture
def build_pipeline(settings, ledger):
    def _build(providers=None, searcher=None, tracker=None, conversations=None):
        searcher = searcher or _searcher()
        providers = providers or [FakeProvider("gemini", 1, text="We open at 9am [1].")]
        orchestrator = GenerationOrchestrator(providers, usage_tracker=tracker)
        return ResponsePipeline(
            retriever=HybridRetriever(searcher, searcher),
            answer_generator=AnswerGenerator(orchestrator),
            ledger=ledger,
            settings=settings,
            conversations=conversations,
        )

    return _build


async def _fund(ledger, amount):
    await ledger.charge(TENANT, amount, TransactionType.PURCHASE)


async def test_web_answer_is_billed_once(build_pipeline, ledger):
    await _fund(ledger, 500)
    tracker = RecordingTracker()
    pipeline = build_pipeline(tracker=tracker)

    result = await pipeline.handle(_message())

    assert result.success is True
    assert result.text == "We open at 9am [1]."
    assert result.points_balance == 499
    assert result.warning is None
    assert result.session_id == "session-1"
    assert [s.document_id for s in result.sources] == ["doc-b"]
    assert await ledger.get_balance(TENANT) == 499
    assert await ledger.ledger_total(TENANT) == 499


async def test_cited_sources_follow_fused_order(build_pipeline, ledger):
    await _fund(ledger, 500)
    pipeline = build_pipeline(providers=[FakeProvider("gemini", 1, text="Parking is free [1].")])
    result = await pipeline.handle(_message())
    # b is in both signals so it outranks a
    assert [s.document_id for s in result.sources] == ["doc-b"]


async def test_low_balance_warning_after_charge(build_pipeline, ledger):
    await _fund(ledger, 50)
    result = await build_pipeline().handle(_message())
    assert result.success is True
    assert result.points_balance == 49
    assert result.warning == LOW_BALANCE_WARNING


async def test_insufficient_points_skips_generation(build_pipeline, ledger):
    provider = FakeProvider("gemini", 1)
    searcher = _searcher()
    result = await build_pipeline(providers=[provider], searcher=searcher).handle(_message())

    assert result.success is False
    assert result.error_code == messages.INSUFFICIENT_POINTS
    assert result.text == messages.ERROR_MESSAGES[messages.INSUFFICIENT_POINTS]
    assert result.points_balance == 0
    assert provider.calls == []
    assert searcher.calls == []


async def test_empty_message_is_invalid(build_pipeline, ledger):
    await _fund(ledger, 10)
    result = await build_pipeline().handle(_message(text="   "))
    assert result.error_code == messages.INVALID_REQUEST
    assert await ledger.get_balance(TENANT) == 10


async def test_all_providers_failing_is_not_billed(build_pipeline, ledger):
    await _fund(ledger, 10)
    providers = [
        FakeProvider("gemini", 1, error=GenerationError("503")),
        FakeProvider("openai", 2, error=GenerationError("429")),
    ]
    result = await build_pipeline(providers=providers).handle(_message())

    assert result.success is False
    assert result.error_code == messages.INTERNAL_ERROR
    assert await ledger.get_balance(TENANT) == 10


async def test_fallback_provider_answer_is_billed(build_pipeline, ledger):
    await _fund(ledger, 10)
    providers = [
        FakeProvider("gemini", 1, error=GenerationError("503")),
        FakeProvider("openai", 2, text="Fallback answer."),
    ]
    result = await build_pipeline(providers=providers).handle(_message())
    assert result.text == "Fallback answer."
    assert await ledger.get_balance(TENANT) == 9


async def test_retrieval_outage_returns_no_information_unbilled(build_pipeline, ledger):
    await _fund(ledger, 10)
    provider = FakeProvider("gemini", 1)
    searcher = _searcher(failing={(DENSE, "ds-1"), (SPARSE, "ds-1")})
    result = await build_pipeline(providers=[provider], searcher=searcher).handle(_message())

    assert result.success is True
    assert result.text == messages.NO_INFORMATION_MESSAGE
    assert provider.calls == []
    assert await ledger.get_balance(TENANT) == 10


async def test_retrieval_outage_can_be_an_error(build_pipeline, ledger, settings):
    settings.answer_on_retrieval_unavailable = False
    await _fund(ledger, 10)
    searcher = _searcher(failing={(DENSE, "ds-1"), (SPARSE, "ds-1")})
    result = await build_pipeline(searcher=searcher).handle(_message())
    assert result.error_code == messages.INTERNAL_ERROR


async def test_messaging_timeout_is_never_billed(build_pipeline, ledger, settings):
    await _fund(ledger, 10)
    slow = FakeProvider("gemini", 1, text="late answer", delay=0.5)
    pipeline = build_pipeline(providers=[slow])

    result = await pipeline.handle(_message(channel=CHANNEL_MESSAGING))
    assert result.success is False
    assert result.error_code == messages.TIMEOUT
    assert result.text == messages.ERROR_MESSAGES[messages.TIMEOUT]

    # let the abandoned generation finish; its result must be discarded
    await asyncio.sleep(0.6)
    assert len(slow.calls) == 1
    assert await ledger.get_balance(TENANT) == 10
    history = await ledger.get_transactions(TENANT)
    assert [tx.type for tx in history] == [TransactionType.PURCHASE]


async def test_web_channel_has_no_deadline(build_pipeline, ledger):
    await _fund(ledger, 10)
    slow = FakeProvider("gemini", 1, text="slow but fine", delay=0.4)
    result = await build_pipeline(providers=[slow]).handle(_message())
    assert result.success is True
    assert result.text == "slow but fine"


async def test_messaging_output_fits_budget(build_pipeline, ledger):
    await _fund(ledger, 10)
    verbose = FakeProvider("gemini", 1, text="word " * 200)
    result = await build_pipeline(providers=[verbose]).handle(_message(channel=CHANNEL_MESSAGING))

    assert result.success is True
    assert len(result.text) <= 300
    assert await ledger.get_balance(TENANT) == 9


async def test_messaging_tenant_length_is_respected(build_pipeline, ledger):
    await _fund(ledger, 10)
    verbose = FakeProvider("gemini", 1, text="x" * 400)
    result = await build_pipeline(providers=[verbose]).handle(
        _message(channel=CHANNEL_MESSAGING, max_response_length=120)
    )
    assert len(result.text) <= 120


async def test_messaging_short_answer_lists_sources(build_pipeline, ledger):
    await _fund(ledger, 10)
    short = FakeProvider("gemini", 1, text="Open 9 to 6 [2].")
    result = await build_pipeline(providers=[short]).handle(_message(channel=CHANNEL_MESSAGING))
    assert result.text.startswith("Open 9 to 6 [2].")
    assert "[Sources]" in result.text
    assert "Opening hours" in result.text


async def test_messaging_prompt_variant_reaches_provider(build_pipeline, ledger):
    await _fund(ledger, 10)
    provider = FakeProvider("gemini", 1)
    await build_pipeline(providers=[provider]).handle(_message(channel=CHANNEL_MESSAGING))
    system_prompt, user_prompt, options = provider.calls[0]
    assert "300 characters" in system_prompt
    assert "When are you open?" in user_prompt
    assert options.channel == CHANNEL_MESSAGING
    assert options.tenant_id == TENANT


def test_request_state_settles_once():
    state = RequestState()
    assert state.claim() is True
    assert state.abandon() is False
    assert state.abandoned is False

    other = RequestState()
    assert other.abandon() is True
    assert other.claim() is False
    assert other.abandoned is True


async def test_second_turn_carries_history(build_pipeline, ledger, conversations):
    await _fund(ledger, 10)
    provider = FakeProvider("gemini", 1, text="We open at 9am [1].")
    pipeline = build_pipeline(providers=[provider], conversations=conversations)

    await pipeline.handle(_message(text="When are you open?"))
    await pipeline.handle(_message(text="And on weekends?"))

    first_system, first_user, first_options = provider.calls[0]
    second_system, second_user, second_options = provider.calls[1]
    assert first_options.is_first_turn is True
    assert "Previous conversation" not in first_user
    assert WEB_FOLLOW_UP_SUFFIX not in first_system

    assert second_options.is_first_turn is False
    assert WEB_FOLLOW_UP_SUFFIX in second_system
    assert "User: When are you open?" in second_user
    assert "Assistant: We open at 9am [1]." in second_user
    assert "And on weekends?" in second_user


async def test_history_is_limited_to_recent_messages(
    build_pipeline, ledger, conversations, settings
):
    await _fund(ledger, 10)
    provider = FakeProvider("gemini", 1, text="ok")
    pipeline = build_pipeline(providers=[provider], conversations=conversations)

    for question in ["q-one", "q-two", "q-three", "q-four"]:
        await pipeline.handle(_message(text=question))

    _, last_user, _ = provider.calls[-1]
    assert settings.conversation_history_messages == 4
    assert "User: q-one" not in last_user
    assert "User: q-two" in last_user
    assert "User: q-three" in last_user
    # the current question is asked, not replayed as history
    assert "User: q-four" not in last_user
    assert "q-four" in last_user


async def test_sessions_do_not_share_history(build_pipeline, ledger, conversations):
    await _fund(ledger, 10)
    provider = FakeProvider("gemini", 1, text="ok")
    pipeline = build_pipeline(providers=[provider], conversations=conversations)

    await pipeline.handle(_message(text="secret question"))
    other = InboundMessage(
        message="hello",
        session_id="session-2",
        channel=CHANNEL_WEB,
        tenant_id=TENANT,
        datasets=[DatasetLink("ds-1")],
    )
    await pipeline.handle(other)

    _, user_prompt, options = provider.calls[1]
    assert options.is_first_turn is True
    assert "secret question" not in user_prompt


async def test_timed_out_turn_is_not_saved(build_pipeline, ledger, conversations):
    await _fund(ledger, 10)
    slow = FakeProvider("gemini", 1, text="late answer", delay=0.5)
    pipeline = build_pipeline(providers=[slow], conversations=conversations)

    result = await pipeline.handle(_message(channel=CHANNEL_MESSAGING))
    assert result.error_code == messages.TIMEOUT
    await asyncio.sleep(0.6)

    conversation = await conversations.get_or_create(TENANT, "session-1", CHANNEL_MESSAGING)
    assert conversation.is_new
    assert await conversations.recent_messages(conversation.conversation_id, 10) == []


async def test_unbilled_turn_is_not_saved(build_pipeline, ledger, conversations):
    provider = FakeProvider("gemini", 1)
    pipeline = build_pipeline(providers=[provider], conversations=conversations)

    result = await pipeline.handle(_message())
    assert result.error_code == messages.INSUFFICIENT_POINTS

    conversation = await conversations.get_or_create(TENANT, "session-1", CHANNEL_WEB)
    assert conversation.is_new


async def test_messaging_follow_up_includes_history(build_pipeline, ledger, conversations):
    await _fund(ledger, 10)
    provider = FakeProvider("gemini", 1, text="Open 9 to 6.")
    pipeline = build_pipeline(providers=[provider], conversations=conversations)

    await pipeline.handle(_message(channel=CHANNEL_MESSAGING, text="Hours?"))
    await pipeline.handle(_message(channel=CHANNEL_MESSAGING, text="Saturday too?"))

    system_prompt, user_prompt, options = provider.calls[1]
    assert "300 characters" in system_prompt
    assert options.is_first_turn is False
    assert "User: Hours?" in user_prompt
    assert "Assistant: Open 9 to 6." in user_prompt

    stored = await conversations.get_or_create(TENANT, "session-1", CHANNEL_MESSAGING)
    assert stored.message_count == 4


async def test_messaging_gives_up_on_a_locked_ledger(build_pipeline, ledger, settings):
    await _fund(ledger, 10)
    settings.messaging_ledger_busy_timeout_s = 0.1
    provider = FakeProvider("gemini", 1)
    pipeline = build_pipeline(providers=[provider])

    holder = await aiosqlite.connect(settings.ledger_db_path, isolation_level=None)
    try:
        await holder.execute("BEGIN EXCLUSIVE")
        started = time.monotonic()
        result = await pipeline.handle(_message(channel=CHANNEL_MESSAGING))
        elapsed = time.monotonic() - started
    finally:
        await holder.execute("ROLLBACK")
        await holder.close()

    # reads still pass under WAL; the debit is what gives up
    assert result.success is False
    assert result.error_code in (messages.INTERNAL_ERROR, messages.TIMEOUT)
    assert elapsed < 2
    assert await ledger.get_balance(TENANT) == 10
