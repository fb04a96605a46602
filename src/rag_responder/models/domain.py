"""Core domain objects used throughout the response pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

DENSE = "dense"
SPARSE = "sparse"
HYBRID = "hybrid"

CHANNEL_WEB = "web"
CHANNEL_MESSAGING = "kakao"

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


@dataclass
class RetrievalCandidate:
    id: str
    dataset_id: str
    document_id: str
    content: str
    raw_score: float
    signal: str  # "dense" or "sparse"
    metadata: dict = field(default_factory=dict)


@dataclass
class FusedResult:
    id: str
    fused_score: float
    candidate: RetrievalCandidate
    dense_score: float | None = None  # cosine similarity when the dense signal saw this id
    source: str = HYBRID

    @property
    def content(self) -> str:
        return self.candidate.content

    @property
    def document_id(self) -> str:
        return self.candidate.document_id

    @property
    def dataset_id(self) -> str:
        return self.candidate.dataset_id


@dataclass
class SignalResults:
    """Per-signal candidate lists, each sorted best first."""

    dense: list[RetrievalCandidate]
    sparse: list[RetrievalCandidate]
    failed_calls: int = 0
    total_calls: int = 0

    def as_lists(self) -> list[list[RetrievalCandidate]]:
        return [self.dense, self.sparse]


@dataclass(frozen=True)
class DatasetLink:
    dataset_id: str
    weight: float = 1.0


@dataclass
class PointsAccount:
    tenant_id: str
    balance: int
    free_trial_granted: bool
    monthly_base_amount: int
    last_recharge_at: datetime | None
    is_low: bool = False


@dataclass(frozen=True)
class PointsTransaction:
    transaction_id: str
    tenant_id: str
    type: str
    amount: int  # signed: negative for debits
    resulting_balance: int
    description: str
    metadata: dict
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class LedgerEntryResult:
    new_balance: int
    transaction_id: str | None  # None when an idempotent credit was a no-op


@dataclass(frozen=True)
class TrialGrantResult:
    granted: bool
    balance: int
    transaction_id: str | None = None


@dataclass(frozen=True)
class AdmissionDecision:
    can_proceed: bool
    current_balance: int
    required: int
    reason: str | None = None  # "INSUFFICIENT_POINTS"
    warning: str | None = None  # "LOW_BALANCE_WARNING"


@dataclass(frozen=True)
class ProviderResult:
    text: str
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class ProviderFailure:
    provider_name: str
    model_id: str
    message: str


@dataclass
class GenerationOutcome:
    text: str
    provider_name: str
    model_id: str
    input_tokens: int
    output_tokens: int
    errors: list[ProviderFailure] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class GenerationOptions:
    max_tokens: int = 1024
    temperature: float = 0.7
    channel: str = CHANNEL_WEB
    is_first_turn: bool = True
    tenant_id: str | None = None
    chatbot_id: str | None = None
    conversation_id: str | None = None
    feature_type: str = "chat"


@dataclass(frozen=True)
class ChannelPolicy:
    channel: str
    max_wall_clock_ms: int | None  # None: no deadline at this layer
    max_output_chars: int | None  # None: no truncation beyond provider limits
    prompt_variant: str  # "first_turn", "follow_up" or "messaging"
    welcome_message: str
    ledger_timeout_s: float | None = None  # None: the ledger store default


@dataclass(frozen=True)
class MessagingBotConfig:
    bot_id: str
    tenant_id: str
    chatbot_id: str | None
    datasets: tuple[DatasetLink, ...]
    max_response_length: int | None = None
    welcome_message: str | None = None


@dataclass
class InboundMessage:
    message: str
    session_id: str
    channel: str
    tenant_id: str
    datasets: list[DatasetLink]
    chatbot_id: str | None = None
    is_first_turn: bool = True
    max_response_length: int | None = None
    welcome_message: str | None = None


@dataclass
class ConversationMessage:
    role: str  # "user" or "assistant"
    content: str
    created_at: datetime
    metadata: dict = field(default_factory=dict)


@dataclass
class Conversation:
    conversation_id: str
    tenant_id: str
    session_id: str
    channel: str
    message_count: int = 0

    @property
    def is_new(self) -> bool:
        return self.message_count == 0


@dataclass
class SourceRef:
    document_id: str
    dataset_id: str
    title: str
    score: float


@dataclass
class PipelineResult:
    success: bool
    text: str
    sources: list[SourceRef] = field(default_factory=list)
    points_balance: int | None = None
    error_code: str | None = None  # timeout, not_found, invalid_request, internal_error, insufficient_points
    warning: str | None = None
    session_id: str | None = None
