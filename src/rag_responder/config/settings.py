"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API Keys
    openai_api_key: str = ""
    google_api_key: str = ""

    # LLM providers (tried in priority order: Gemini, then OpenAI)
    gemini_model: str = "gemini-2.5-flash-lite"
    openai_model: str = "gpt-4o-mini"
    generation_temperature: float = 0.7
    generation_max_tokens: int = 1024

    # Retrieval
    search_service_url: str = "http://localhost:8100"
    search_timeout_s: float = 3.0
    rrf_k: int = 60
    retrieval_limit: int = 5
    retrieval_candidate_multiplier: int = 2
    dataset_weight_min: float = 0.1
    dataset_weight_max: float = 10.0
    answer_on_retrieval_unavailable: bool = True

    # Points
    points_per_response: int = 1
    low_points_threshold: int = 100
    free_trial_points: int = 500

    # Messaging webhook channel (platform times out at 5s)
    messaging_timeout_ms: int = 4000
    messaging_max_response_length: int = 300
    messaging_max_text_length: int = 1000
    messaging_max_sources: int = 3
    messaging_skip_ip_validation: bool = False
    messaging_allowed_ip_prefixes: str = (
        "203.133.167.,27.0.236.,27.0.237.,27.0.238.,27.0.239.,"
        "211.231.99.,211.231.100.,211.231.101.,211.231.102.,211.231.103."
    )
    messaging_rate_limit_per_minute: int = 30
    # Ledger calls on the messaging path give up on a locked database quickly
    messaging_ledger_busy_timeout_s: float = 0.5

    # Conversation history
    conversation_history_messages: int = 4

    # Storage paths
    ledger_db_path: str = "data/ledger.db"
    usage_db_path: str = "data/usage.db"
    tenant_db_path: str = "data/tenants.db"
    conversation_db_path: str = "data/conversations.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Auth / JWT
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 60
    api_keys: str = ""  # comma-separated "api_key:tenant_id" pairs

    # Rate limiting
    rate_limit_requests_per_minute: int = 60

    model_config = {"env_file": ".env", "env_prefix": "RAG_"}

    @property
    def allowed_ip_prefixes(self) -> list[str]:
        return [p.strip() for p in self.messaging_allowed_ip_prefixes.split(",") if p.strip()]
