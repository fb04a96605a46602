"""Query-time response pipeline: admission, retrieval, generation, billing, channel output."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass, field, replace
from functools import partial

from rag_responder.channels import messages
from rag_responder.channels.formatting import compose_with_sources, source_title
from rag_responder.channels.policy import resolve_policy
from rag_responder.config.settings import Settings
from rag_responder.exceptions import (
    AllProvidersFailed,
    ChannelTimeout,
    ConversationStoreError,
    InsufficientPoints,
    LedgerError,
    RAGResponderError,
    RetrievalUnavailable,
)
from rag_responder.generation.answer_generator import AnswerGenerator, cited_evidence
from rag_responder.generation.prompt_templates import prompt_variant
from rag_responder.models.domain import (
    ChannelPolicy,
    ConversationMessage,
    FusedResult,
    GenerationOptions,
    GenerationOutcome,
    InboundMessage,
    PipelineResult,
    SourceRef,
)
from rag_responder.observability.logger import get_logger
from rag_responder.observability.metrics import (
    log_billing,
    log_generation_metrics,
    log_latency,
    log_retrieval_metrics,
)
from rag_responder.observability.tracing import TraceContext
from rag_responder.points.ledger import PointsLedger
from rag_responder.protocols.conversations import ConversationStore
from rag_responder.retrieval.hybrid_retriever import HybridRetriever

logger = get_logger("response_pipeline")


class RequestState:
    """Per-request guard so exactly one party acts on the generation result."""

    def __init__(self) -> None:
        self._settled = False
        self.abandoned = False

    def claim(self) -> bool:
        if self._settled:
            return False
        self._settled = True
        return True

    def abandon(self) -> bool:
        if not self.claim():
            return False
        self.abandoned = True
        return True


@dataclass
class _Answer:
    outcome: GenerationOutcome
    evidence: list[FusedResult]
    conversation_id: str | None = None


@dataclass
class _Turn:
    conversation_id: str | None
    is_first_turn: bool
    history: list[ConversationMessage] = field(default_factory=list)


class ResponsePipeline:
    def __init__(
        self,
        retriever: HybridRetriever,
        answer_generator: AnswerGenerator,
        ledger: PointsLedger,
        settings: Settings,
        conversations: ConversationStore | None = None,
    ) -> None:
        self._retriever = retriever
        self._generator = answer_generator
        self._ledger = ledger
        self._settings = settings
        self._conversations = conversations
        self._abandoned: set[asyncio.Task] = set()

    async def handle(self, message: InboundMessage) -> PipelineResult:
        trace = TraceContext()
        policy = resolve_policy(
            message.channel,
            self._settings,
            is_first_turn=message.is_first_turn,
            max_response_length=message.max_response_length,
            welcome_message=message.welcome_message,
        )
        query = message.message.strip()
        if not query:
            return self._failure(messages.INVALID_REQUEST, message)

        # Admission: no generation without an affirmative decision
        with trace.span("admission"):
            try:
                decision = await self._ledger.validate(
                    message.tenant_id, timeout_s=policy.ledger_timeout_s
                )
            except LedgerError as e:
                logger.error("admission_check_failed", tenant_id=message.tenant_id, error=str(e))
                return self._failure(messages.INTERNAL_ERROR, message)

        if not decision.can_proceed:
            return self._failure(
                messages.INSUFFICIENT_POINTS, message, points_balance=decision.current_balance
            )

        state = RequestState()
        with trace.span("answer", channel=policy.channel):
            try:
                answer = await self._within_budget(
                    self._answer(query, message, policy, trace), policy, state
                )
            except ChannelTimeout:
                logger.warning(
                    "channel_timeout",
                    channel=policy.channel,
                    budget_ms=policy.max_wall_clock_ms,
                    tenant_id=message.tenant_id,
                )
                return self._failure(messages.TIMEOUT, message)
            except RetrievalUnavailable as e:
                logger.error("retrieval_unavailable", tenant_id=message.tenant_id, error=str(e))
                if self._settings.answer_on_retrieval_unavailable:
                    return PipelineResult(
                        success=True,
                        text=messages.NO_INFORMATION_MESSAGE,
                        points_balance=decision.current_balance,
                        session_id=message.session_id,
                    )
                return self._failure(messages.INTERNAL_ERROR, message)
            except AllProvidersFailed as e:
                logger.error(
                    "generation_failed",
                    tenant_id=message.tenant_id,
                    errors=[{"provider": f.provider_name, "error": f.message} for f in e.errors],
                )
                return self._failure(messages.INTERNAL_ERROR, message)
            except RAGResponderError as e:
                logger.error("pipeline_error", tenant_id=message.tenant_id, error=str(e))
                return self._failure(messages.INTERNAL_ERROR, message)

        # Billing happens only after a confirmed answer
        with trace.span("billing"):
            try:
                entry = await self._ledger.debit(
                    message.tenant_id,
                    metadata={
                        "chatbot_id": message.chatbot_id,
                        "conversation_id": message.session_id,
                        "channel": policy.channel,
                    },
                    timeout_s=policy.ledger_timeout_s,
                )
            except InsufficientPoints as e:
                return self._failure(
                    messages.INSUFFICIENT_POINTS, message, points_balance=e.current_balance
                )
            except LedgerError as e:
                logger.error("debit_failed", tenant_id=message.tenant_id, error=str(e))
                return self._failure(messages.INTERNAL_ERROR, message)

        warning = self._ledger.low_balance_warning(entry.new_balance)
        log_billing(
            trace.trace_id,
            message.tenant_id,
            self._ledger.points_per_response,
            entry.new_balance,
            warning,
        )

        sources = [
            SourceRef(
                document_id=r.document_id,
                dataset_id=r.dataset_id,
                title=source_title(r.content),
                score=round(r.fused_score, 5),
            )
            for r in cited_evidence(answer.outcome.text, answer.evidence)
        ]
        text = self._shape_output(answer.outcome.text, sources, policy)
        await self._save_exchange(answer, query, sources)

        log_latency(trace.trace_id, "total", trace.elapsed_ms)
        logger.info(
            "response_completed",
            trace_id=trace.trace_id,
            channel=policy.channel,
            tenant_id=message.tenant_id,
            response_length=len(text),
            spans=trace.summary(),
        )
        return PipelineResult(
            success=True,
            text=text,
            sources=sources,
            points_balance=entry.new_balance,
            warning=warning,
            session_id=message.session_id,
        )

    async def _answer(
        self,
        query: str,
        message: InboundMessage,
        policy: ChannelPolicy,
        trace: TraceContext,
    ) -> _Answer:
        turn = await self._load_turn(message, policy)
        policy = replace(policy, prompt_variant=prompt_variant(policy.channel, turn.is_first_turn))

        evidence = await self._retriever.search(
            query, message.datasets, limit=self._settings.retrieval_limit
        )
        log_retrieval_metrics(trace.trace_id, evidence, len(message.datasets))

        options = GenerationOptions(
            max_tokens=self._settings.generation_max_tokens,
            temperature=self._settings.generation_temperature,
            channel=policy.channel,
            is_first_turn=turn.is_first_turn,
            tenant_id=message.tenant_id,
            chatbot_id=message.chatbot_id,
            conversation_id=turn.conversation_id or message.session_id,
        )
        outcome = await self._generator.generate(
            query, evidence, policy, options, history=turn.history
        )
        log_generation_metrics(trace.trace_id, outcome)
        return _Answer(outcome=outcome, evidence=evidence, conversation_id=turn.conversation_id)

    async def _load_turn(self, message: InboundMessage, policy: ChannelPolicy) -> _Turn:
        """Resolve the session's conversation; the first turn is one with no stored messages."""
        if self._conversations is None:
            return _Turn(conversation_id=None, is_first_turn=message.is_first_turn)
        try:
            conversation = await self._conversations.get_or_create(
                message.tenant_id, message.session_id, policy.channel, message.chatbot_id
            )
            history: list[ConversationMessage] = []
            if not conversation.is_new:
                history = await self._conversations.recent_messages(
                    conversation.conversation_id, self._settings.conversation_history_messages
                )
        except ConversationStoreError as e:
            logger.warning(
                "conversation_unavailable", session_id=message.session_id, error=str(e)
            )
            return _Turn(conversation_id=None, is_first_turn=message.is_first_turn)
        return _Turn(
            conversation_id=conversation.conversation_id,
            is_first_turn=conversation.is_new,
            history=history,
        )

    async def _save_exchange(self, answer: _Answer, query: str, sources: list[SourceRef]) -> None:
        if self._conversations is None or answer.conversation_id is None:
            return
        try:
            await self._conversations.append_exchange(
                answer.conversation_id,
                query,
                answer.outcome.text,
                [s.document_id for s in sources],
            )
        except ConversationStoreError as e:
            logger.warning(
                "conversation_save_failed", conversation_id=answer.conversation_id, error=str(e)
            )

    async def _within_budget(
        self,
        work: Awaitable[_Answer],
        policy: ChannelPolicy,
        state: RequestState,
    ) -> _Answer:
        """Race ``work`` against the channel deadline.

        The losing work is not cancelled; it is marked abandoned and its
        eventual result is discarded, so it can neither bill nor reply.
        """
        if policy.max_wall_clock_ms is None:
            result = await work
            state.claim()
            return result

        task = asyncio.ensure_future(work)
        done, _ = await asyncio.wait({task}, timeout=policy.max_wall_clock_ms / 1000)
        if task in done and state.claim():
            return task.result()

        state.abandon()
        self._abandoned.add(task)
        task.add_done_callback(partial(self._discard_late_result, state))
        raise ChannelTimeout(policy.max_wall_clock_ms)

    def _discard_late_result(self, state: RequestState, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        logger.info(
            "late_result_discarded",
            abandoned=state.abandoned,
            succeeded=error is None,
            error=str(error) if error else None,
        )

    def _shape_output(self, text: str, sources: list[SourceRef], policy: ChannelPolicy) -> str:
        if policy.max_output_chars is None:
            return text
        return compose_with_sources(
            text,
            [s.title for s in sources],
            policy.max_output_chars,
            max_sources=self._settings.messaging_max_sources,
        )

    @staticmethod
    def _failure(
        error_code: str, message: InboundMessage, points_balance: int | None = None
    ) -> PipelineResult:
        return PipelineResult(
            success=False,
            text=messages.error_message(error_code),
            points_balance=points_balance,
            error_code=error_code,
            session_id=message.session_id,
        )

    async def aclose(self) -> None:
        for task in list(self._abandoned):
            task.cancel()
        if self._abandoned:
            await asyncio.gather(*list(self._abandoned), return_exceptions=True)
