"""All prompt templates for answer generation."""

from __future__ import annotations

from rag_responder.models.domain import (
    CHANNEL_MESSAGING,
    ROLE_USER,
    ConversationMessage,
    FusedResult,
)

PROMPT_FIRST_TURN = "first_turn"
PROMPT_FOLLOW_UP = "follow_up"
PROMPT_MESSAGING = "messaging"

WEB_SYSTEM_PROMPT_BASE = """You are an AI assistant that answers questions from a company's documents.

## Answering rules
1. Answer accurately using only the information in the provided context.
2. If the context does not contain the answer, say: "I couldn't find related information in the provided documents."
3. Use a natural, concise conversational tone.
4. Lead with the key point, then add detail only if needed.

## Never use
- Formal greetings such as "Hello!"
- Preambles such as "According to the documents" or "Based on document [1]"
- Filler such as "I hope this helps" or "Let me know if you have more questions"
- Repeating what was already explained"""

WEB_FIRST_TURN_SUFFIX = """

## First question guidance
- Answer in enough detail.
- Use bullet points or numbered lists where helpful.
- Include relevant surrounding context."""

WEB_FOLLOW_UP_SUFFIX = """

## Follow-up question guidance
- Only the key point, in 2-3 sentences.
- Do not repeat what was already explained.
- Start with the answer directly, no preamble."""

MESSAGING_SYSTEM_PROMPT = """You are an AI assistant answering customer questions inside a messenger chat.

Rules:
1. Answer accurately based on the provided context.
2. Keep the answer short (at most {max_chars} characters).
3. Stay friendly yet professional.
4. If the context has no relevant information, reply: "I couldn't find related information. Do you have another question?"
5. Do not open with a greeting. Answer right away."""

ANSWER_PROMPT = """## Relevant document content:
{context}
{history}
## Question:
{query}

## Answer:"""

NO_CONTEXT_PLACEHOLDER = "(no relevant documents were found)"

HISTORY_SECTION = """
## Previous conversation:
{turns}
"""


def prompt_variant(channel: str, is_first_turn: bool) -> str:
    if channel == CHANNEL_MESSAGING:
        return PROMPT_MESSAGING
    return PROMPT_FIRST_TURN if is_first_turn else PROMPT_FOLLOW_UP


def build_system_prompt(variant: str, max_chars: int | None = None) -> str:
    if variant == PROMPT_MESSAGING:
        return MESSAGING_SYSTEM_PROMPT.format(max_chars=max_chars or 300)
    if variant == PROMPT_FOLLOW_UP:
        return WEB_SYSTEM_PROMPT_BASE + WEB_FOLLOW_UP_SUFFIX
    return WEB_SYSTEM_PROMPT_BASE + WEB_FIRST_TURN_SUFFIX


def format_context(evidence: list[FusedResult]) -> str:
    if not evidence:
        return NO_CONTEXT_PLACEHOLDER
    return "\n\n---\n\n".join(f"[{i}] {r.content}" for i, r in enumerate(evidence, 1))


def format_history(history: list[ConversationMessage]) -> str:
    if not history:
        return ""
    turns = "\n".join(
        f"{'User' if m.role == ROLE_USER else 'Assistant'}: {m.content}" for m in history
    )
    return HISTORY_SECTION.format(turns=turns)


def build_user_prompt(
    query: str,
    evidence: list[FusedResult],
    history: list[ConversationMessage] | None = None,
) -> str:
    return ANSWER_PROMPT.format(
        context=format_context(evidence),
        history=format_history(history or []),
        query=query,
    )
