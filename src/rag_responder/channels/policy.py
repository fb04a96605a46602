"""Per-request channel policy: deadline, output budget, prompt shape."""

from __future__ import annotations

from rag_responder.channels.messages import DEFAULT_WELCOME_MESSAGE
from rag_responder.config.settings import Settings
from rag_responder.exceptions import ConfigurationError
from rag_responder.generation.prompt_templates import prompt_variant
from rag_responder.models.domain import CHANNEL_MESSAGING, CHANNEL_WEB, ChannelPolicy

# The messaging platform abandons a webhook call after this long.
MESSAGING_PLATFORM_TIMEOUT_MS = 5000

SUPPORTED_CHANNELS = (CHANNEL_WEB, CHANNEL_MESSAGING)


def resolve_policy(
    channel: str,
    settings: Settings,
    is_first_turn: bool = True,
    max_response_length: int | None = None,
    welcome_message: str | None = None,
) -> ChannelPolicy:
    if channel not in SUPPORTED_CHANNELS:
        raise ConfigurationError(f"Unsupported channel: {channel}")

    if channel == CHANNEL_WEB:
        return ChannelPolicy(
            channel=channel,
            max_wall_clock_ms=None,
            max_output_chars=None,
            prompt_variant=prompt_variant(channel, is_first_turn),
            welcome_message=welcome_message or DEFAULT_WELCOME_MESSAGE,
        )

    if not 0 < settings.messaging_timeout_ms < MESSAGING_PLATFORM_TIMEOUT_MS:
        raise ConfigurationError(
            f"messaging_timeout_ms must be between 0 and {MESSAGING_PLATFORM_TIMEOUT_MS}, "
            f"got {settings.messaging_timeout_ms}"
        )

    max_chars = max_response_length or settings.messaging_max_response_length
    return ChannelPolicy(
        channel=channel,
        max_wall_clock_ms=settings.messaging_timeout_ms,
        max_output_chars=min(max_chars, settings.messaging_max_text_length),
        prompt_variant=prompt_variant(channel, is_first_turn),
        welcome_message=welcome_message or DEFAULT_WELCOME_MESSAGE,
        ledger_timeout_s=settings.messaging_ledger_busy_timeout_s,
    )
