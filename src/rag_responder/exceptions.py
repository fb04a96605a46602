"""Custom exception hierarchy for the response pipeline."""

from __future__ import annotations


class RAGResponderError(Exception):
    """Base exception for all response pipeline errors."""


class RetrievalError(RAGResponderError):
    """Error during evidence retrieval."""


class RetrievalUnavailable(RetrievalError):
    """Every retrieval signal for every dataset failed."""


class GenerationError(RAGResponderError):
    """Error during answer generation."""


class AllProvidersFailed(GenerationError):
    """No LLM provider produced an answer.

    ``errors`` holds one ``ProviderFailure`` per provider that was tried and
    failed. Unavailable providers are not listed.
    """

    def __init__(self, errors: list | None = None) -> None:
        self.errors = list(errors or [])
        detail = "; ".join(f"{e.provider_name}: {e.message}" for e in self.errors)
        super().__init__(f"All LLM providers failed ({detail or 'no provider available'})")


class AdmissionError(RAGResponderError):
    """Error while deciding whether a billed response may proceed."""


class InsufficientPoints(AdmissionError):
    """The tenant's balance cannot cover the response."""

    def __init__(self, tenant_id: str, current_balance: int, required: int) -> None:
        self.tenant_id = tenant_id
        self.current_balance = current_balance
        self.required = required
        super().__init__(
            f"Insufficient points for tenant {tenant_id}: "
            f"balance={current_balance}, required={required}"
        )


class LedgerError(AdmissionError):
    """Ledger storage failed. Callers must fail closed."""


class ChannelTimeout(RAGResponderError):
    """The channel's internal deadline fired before a reply was ready."""

    def __init__(self, budget_ms: int) -> None:
        self.budget_ms = budget_ms
        super().__init__(f"Channel deadline of {budget_ms}ms exceeded")


class ConversationStoreError(RAGResponderError):
    """Conversation history could not be read or written."""


class ConfigurationError(RAGResponderError):
    """Error in system configuration."""
