"""Fixed user-facing messages keyed by error category."""

from __future__ import annotations

TIMEOUT = "timeout"
NOT_FOUND = "not_found"
INVALID_REQUEST = "invalid_request"
INTERNAL_ERROR = "internal_error"
INSUFFICIENT_POINTS = "insufficient_points"

ERROR_MESSAGES: dict[str, str] = {
    TIMEOUT: "Still preparing your answer. Please try again in a moment.",
    NOT_FOUND: "This chatbot could not be found. Please contact the administrator.",
    INVALID_REQUEST: "The request was not valid.",
    INTERNAL_ERROR: "Sorry, a temporary error occurred. Please try again shortly.",
    INSUFFICIENT_POINTS: "This chatbot has run out of response credits. Please contact the administrator.",
}

DEFAULT_WELCOME_MESSAGE = "Hello! How can I help you?"
NO_INFORMATION_MESSAGE = "I couldn't find related information in the provided documents."


def error_message(error_code: str | None) -> str:
    return ERROR_MESSAGES.get(error_code or INTERNAL_ERROR, ERROR_MESSAGES[INTERNAL_ERROR])
