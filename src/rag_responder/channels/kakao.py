"""Messaging-platform webhook (skill server) adapter.

Translates skill payloads into pipeline calls and pipeline results into the
platform's ``version 2.0`` response envelope. The platform only renders 200
responses, so every domain failure becomes a short fixed message.
"""

from __future__ import annotations

import aiosqlite

from rag_responder.channels import messages
from rag_responder.channels.formatting import truncate_text
from rag_responder.channels.policy import resolve_policy
from rag_responder.config.settings import Settings
from rag_responder.models.domain import CHANNEL_MESSAGING, InboundMessage, PipelineResult
from rag_responder.models.schemas import QuickReply, SkillRequest, SkillResponse, SkillTemplate
from rag_responder.observability.logger import get_logger
from rag_responder.pipeline.response_pipeline import ResponsePipeline
from rag_responder.protocols.tenants import TenantDirectory

logger = get_logger("messaging")

DEV_ALLOWED_IPS = ("127.0.0.1", "::1", "localhost")

RETRY_QUICK_REPLY = QuickReply(label="Ask again", messageText="Let me ask again")


def client_ip(headers: dict[str, str], fallback: str | None = None) -> str:
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return fallback or "unknown"


def is_allowed_source_ip(ip: str, settings: Settings) -> bool:
    if settings.messaging_skip_ip_validation:
        return True
    if ip in DEV_ALLOWED_IPS:
        return True
    return any(ip.startswith(prefix) for prefix in settings.allowed_ip_prefixes)


def simple_text_response(
    text: str,
    max_length: int = 1000,
    quick_replies: list[QuickReply] | None = None,
) -> SkillResponse:
    return SkillResponse(
        template=SkillTemplate(
            outputs=[{"simpleText": {"text": truncate_text(text, max_length)}}],
            quickReplies=quick_replies,
        )
    )


def error_response(error_code: str, max_length: int = 1000) -> SkillResponse:
    quick_replies = [RETRY_QUICK_REPLY] if error_code == messages.TIMEOUT else None
    return simple_text_response(messages.error_message(error_code), max_length, quick_replies)


def to_skill_response(result: PipelineResult, max_length: int = 1000) -> SkillResponse:
    if not result.success:
        return error_response(result.error_code or messages.INTERNAL_ERROR, max_length)
    return simple_text_response(result.text, max_length)


def mask_user_id(user_id: str) -> str:
    return user_id[:8] + "..."


class MessagingSkillService:
    def __init__(
        self,
        pipeline: ResponsePipeline,
        tenants: TenantDirectory,
        settings: Settings,
    ) -> None:
        self._pipeline = pipeline
        self._tenants = tenants
        self._settings = settings

    async def process(self, request: SkillRequest) -> PipelineResult:
        bot_id = request.bot.id if request.bot else None
        if not bot_id:
            logger.warning("skill_request_without_bot_id")
            return self._error(messages.INVALID_REQUEST)

        utterance = request.userRequest.utterance.strip()
        if not utterance:
            logger.warning("skill_request_without_utterance", bot_id=bot_id)
            return self._error(messages.INVALID_REQUEST)

        try:
            bot = await self._tenants.get_messaging_bot(bot_id)
        except aiosqlite.Error as e:
            logger.error("bot_lookup_failed", bot_id=bot_id, error=str(e))
            return self._error(messages.INTERNAL_ERROR)
        if bot is None:
            logger.warning("messaging_bot_not_found", bot_id=bot_id)
            return self._error(messages.NOT_FOUND)

        user_id = request.userRequest.user.id
        logger.info(
            "skill_request",
            bot_id=bot_id,
            tenant_id=bot.tenant_id,
            user_id=mask_user_id(user_id),
            utterance_length=len(utterance),
        )
        return await self._pipeline.handle(
            InboundMessage(
                message=utterance,
                session_id=f"kakao-{bot_id}-{user_id}",
                channel=CHANNEL_MESSAGING,
                tenant_id=bot.tenant_id,
                datasets=list(bot.datasets),
                chatbot_id=bot.chatbot_id,
                max_response_length=bot.max_response_length,
                welcome_message=bot.welcome_message,
            )
        )

    async def welcome(self, request: SkillRequest) -> SkillResponse:
        bot = None
        if request.bot:
            try:
                bot = await self._tenants.get_messaging_bot(request.bot.id)
            except aiosqlite.Error as e:
                logger.error("bot_lookup_failed", bot_id=request.bot.id, error=str(e))
        policy = resolve_policy(
            CHANNEL_MESSAGING,
            self._settings,
            welcome_message=bot.welcome_message if bot else None,
        )
        return simple_text_response(policy.welcome_message, self._settings.messaging_max_text_length)

    @staticmethod
    def _error(error_code: str) -> PipelineResult:
        return PipelineResult(
            success=False,
            text=messages.error_message(error_code),
            error_code=error_code,
        )
