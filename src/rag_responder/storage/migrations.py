"""Idempotent database schema creation."""

from __future__ import annotations

import aiosqlite

POINTS_ACCOUNTS_TABLE = """
CREATE TABLE IF NOT EXISTS points_accounts (
    tenant_id TEXT PRIMARY KEY,
    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
    free_trial_granted INTEGER NOT NULL DEFAULT 0,
    monthly_base_amount INTEGER NOT NULL DEFAULT 0,
    last_recharge_at TEXT,
    updated_at TEXT NOT NULL
)
"""

POINTS_TRANSACTIONS_TABLE = """
CREATE TABLE IF NOT EXISTS points_transactions (
    transaction_id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    type TEXT NOT NULL,
    amount INTEGER NOT NULL,
    resulting_balance INTEGER NOT NULL,
    description TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
)
"""

POINTS_TRANSACTIONS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_points_tx_tenant_created
ON points_transactions(tenant_id, created_at)
"""

TOKEN_USAGE_TABLE = """
CREATE TABLE IF NOT EXISTS token_usage (
    usage_id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    chatbot_id TEXT,
    conversation_id TEXT,
    provider TEXT NOT NULL,
    model TEXT NOT NULL,
    feature_type TEXT NOT NULL,
    input_tokens INTEGER NOT NULL,
    output_tokens INTEGER NOT NULL,
    input_cost_usd REAL NOT NULL,
    output_cost_usd REAL NOT NULL,
    total_cost_usd REAL NOT NULL,
    created_at TEXT NOT NULL
)
"""

TOKEN_USAGE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_token_usage_tenant_created
ON token_usage(tenant_id, created_at)
"""

MESSAGING_BOTS_TABLE = """
CREATE TABLE IF NOT EXISTS messaging_bots (
    bot_id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    chatbot_id TEXT,
    enabled INTEGER NOT NULL DEFAULT 1,
    max_response_length INTEGER,
    welcome_message TEXT
)
"""

DATASETS_TABLE = """
CREATE TABLE IF NOT EXISTS datasets (
    dataset_id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    weight REAL NOT NULL DEFAULT 1.0
)
"""

CHATBOT_DATASETS_TABLE = """
CREATE TABLE IF NOT EXISTS chatbot_datasets (
    chatbot_id TEXT NOT NULL,
    dataset_id TEXT NOT NULL,
    PRIMARY KEY (chatbot_id, dataset_id)
)
"""


CONVERSATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS conversations (
    conversation_id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    channel TEXT NOT NULL,
    chatbot_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (tenant_id, session_id)
)
"""

CONVERSATION_MESSAGES_TABLE = """
CREATE TABLE IF NOT EXISTS conversation_messages (
    message_id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(conversation_id),
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
    content TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
)
"""

CONVERSATION_MESSAGES_INDEX = """
CREATE INDEX IF NOT EXISTS idx_conversation_messages_conv
ON conversation_messages(conversation_id, created_at)
"""

async def initialize_ledger_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute(POINTS_ACCOUNTS_TABLE)
        await db.execute(POINTS_TRANSACTIONS_TABLE)
        await db.execute(POINTS_TRANSACTIONS_INDEX)
        await db.commit()


async def initialize_usage_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(TOKEN_USAGE_TABLE)
        await db.execute(TOKEN_USAGE_INDEX)
        await db.commit()


async def initialize_tenant_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(MESSAGING_BOTS_TABLE)
        await db.execute(DATASETS_TABLE)
        await db.execute(CHATBOT_DATASETS_TABLE)
        await db.commit()


async def initialize_conversation_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute(CONVERSATIONS_TABLE)
        await db.execute(CONVERSATION_MESSAGES_TABLE)
        await db.execute(CONVERSATION_MESSAGES_INDEX)
        await db.commit()
