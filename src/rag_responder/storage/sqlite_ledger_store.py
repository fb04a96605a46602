"""SQLite-backed points ledger: live balances plus an append-only transaction log."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from uuid import uuid4

import aiosqlite

from rag_responder.exceptions import LedgerError
from rag_responder.models.domain import (
    LedgerEntryResult,
    PointsAccount,
    PointsTransaction,
    TrialGrantResult,
)
from rag_responder.storage.migrations import initialize_ledger_db


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteLedgerStore:
    """Every balance mutation and its transaction row share one write transaction.

    Writers open the transaction with ``BEGIN IMMEDIATE``, so SQLite serializes
    them; the debit is a single conditional ``UPDATE ... WHERE balance >= ?``,
    never a read followed by a write.
    """

    def __init__(self, db_path: str, busy_timeout_s: float = 30.0) -> None:
        self._db_path = db_path
        self._busy_timeout_s = busy_timeout_s

    async def initialize(self) -> None:
        try:
            await initialize_ledger_db(self._db_path)
        except aiosqlite.Error as e:
            raise LedgerError(f"Failed to initialize ledger: {e}") from e

    @asynccontextmanager
    async def _write_transaction(
        self, timeout_s: float | None = None
    ) -> AsyncIterator[aiosqlite.Connection]:
        timeout = self._busy_timeout_s if timeout_s is None else timeout_s
        try:
            async with aiosqlite.connect(
                self._db_path, timeout=timeout, isolation_level=None
            ) as db:
                await db.execute("BEGIN IMMEDIATE")
                try:
                    yield db
                except BaseException:
                    await db.execute("ROLLBACK")
                    raise
                await db.execute("COMMIT")
        except aiosqlite.Error as e:
            raise LedgerError(f"Ledger write failed: {e}") from e

    @asynccontextmanager
    async def _read(self, timeout_s: float | None = None) -> AsyncIterator[aiosqlite.Connection]:
        timeout = self._busy_timeout_s if timeout_s is None else timeout_s
        try:
            async with aiosqlite.connect(self._db_path, timeout=timeout) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as e:
            raise LedgerError(f"Ledger read failed: {e}") from e

    @staticmethod
    async def _ensure_account(db: aiosqlite.Connection, tenant_id: str) -> None:
        await db.execute(
            "INSERT OR IGNORE INTO points_accounts (tenant_id, balance, updated_at) VALUES (?, 0, ?)",
            (tenant_id, _now()),
        )

    @staticmethod
    async def _current_balance(db: aiosqlite.Connection, tenant_id: str) -> int:
        async with db.execute(
            "SELECT balance FROM points_accounts WHERE tenant_id = ?", (tenant_id,)
        ) as cursor:
            row = await cursor.fetchone()
            return int(row[0]) if row else 0

    @staticmethod
    async def _append_transaction(
        db: aiosqlite.Connection,
        tenant_id: str,
        tx_type: str,
        amount: int,
        resulting_balance: int,
        description: str,
        metadata: dict,
    ) -> str:
        transaction_id = str(uuid4())
        await db.execute(
            "INSERT INTO points_transactions "
            "(transaction_id, tenant_id, type, amount, resulting_balance, description, metadata, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                transaction_id,
                tenant_id,
                tx_type,
                amount,
                resulting_balance,
                description,
                json.dumps(metadata),
                _now(),
            ),
        )
        return transaction_id

    async def get_account(self, tenant_id: str) -> PointsAccount | None:
        async with self._read() as db:
            async with db.execute(
                "SELECT * FROM points_accounts WHERE tenant_id = ?", (tenant_id,)
            ) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    return None
                return PointsAccount(
                    tenant_id=row["tenant_id"],
                    balance=row["balance"],
                    free_trial_granted=bool(row["free_trial_granted"]),
                    monthly_base_amount=row["monthly_base_amount"],
                    last_recharge_at=(
                        datetime.fromisoformat(row["last_recharge_at"])
                        if row["last_recharge_at"]
                        else None
                    ),
                )

    async def get_balance(self, tenant_id: str, timeout_s: float | None = None) -> int:
        async with self._read(timeout_s) as db:
            return await self._current_balance(db, tenant_id)

    async def conditional_debit(
        self,
        tenant_id: str,
        amount: int,
        tx_type: str,
        description: str,
        metadata: dict,
        timeout_s: float | None = None,
    ) -> LedgerEntryResult | None:
        """Decrement by ``amount`` only if the balance covers it.

        Returns None when the conditional update touched no row. ``timeout_s``
        overrides how long to wait for another writer's lock.
        """
        async with self._write_transaction(timeout_s) as db:
            cursor = await db.execute(
                "UPDATE points_accounts SET balance = MAX(balance - ?, 0), updated_at = ? "
                "WHERE tenant_id = ? AND balance >= ?",
                (amount, _now(), tenant_id, amount),
            )
            if cursor.rowcount == 0:
                return None
            balance = await self._current_balance(db, tenant_id)
            transaction_id = await self._append_transaction(
                db, tenant_id, tx_type, -amount, balance, description, metadata
            )
            return LedgerEntryResult(new_balance=balance, transaction_id=transaction_id)

    async def credit(
        self,
        tenant_id: str,
        amount: int,
        tx_type: str,
        description: str,
        metadata: dict,
        record_recharge: bool = False,
    ) -> LedgerEntryResult:
        async with self._write_transaction() as db:
            await self._ensure_account(db, tenant_id)
            now = _now()
            if record_recharge:
                await db.execute(
                    "UPDATE points_accounts SET balance = balance + ?, monthly_base_amount = ?, "
                    "last_recharge_at = ?, updated_at = ? WHERE tenant_id = ?",
                    (amount, amount, now, now, tenant_id),
                )
            else:
                await db.execute(
                    "UPDATE points_accounts SET balance = balance + ?, updated_at = ? WHERE tenant_id = ?",
                    (amount, now, tenant_id),
                )
            balance = await self._current_balance(db, tenant_id)
            transaction_id = await self._append_transaction(
                db, tenant_id, tx_type, amount, balance, description, metadata
            )
            return LedgerEntryResult(new_balance=balance, transaction_id=transaction_id)

    async def grant_once(
        self,
        tenant_id: str,
        amount: int,
        tx_type: str,
        description: str,
        metadata: dict,
    ) -> TrialGrantResult:
        """Credit ``amount`` and set the trial flag in the same conditional update."""
        async with self._write_transaction() as db:
            await self._ensure_account(db, tenant_id)
            cursor = await db.execute(
                "UPDATE points_accounts SET balance = balance + ?, free_trial_granted = 1, updated_at = ? "
                "WHERE tenant_id = ? AND free_trial_granted = 0",
                (amount, _now(), tenant_id),
            )
            balance = await self._current_balance(db, tenant_id)
            if cursor.rowcount == 0:
                return TrialGrantResult(granted=False, balance=balance)
            transaction_id = await self._append_transaction(
                db, tenant_id, tx_type, amount, balance, description, metadata
            )
            return TrialGrantResult(granted=True, balance=balance, transaction_id=transaction_id)

    async def list_transactions(
        self,
        tenant_id: str,
        limit: int = 20,
        offset: int = 0,
        from_date: datetime | None = None,
    ) -> list[PointsTransaction]:
        query = "SELECT * FROM points_transactions WHERE tenant_id = ?"
        params: list = [tenant_id]
        if from_date is not None:
            query += " AND created_at >= ?"
            params.append(from_date.astimezone(timezone.utc).isoformat())
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        async with self._read() as db:
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_transaction(row) for row in rows]

    async def sum_amounts(
        self, tenant_id: str, tx_type: str | None = None, since: datetime | None = None
    ) -> tuple[int, int]:
        """Return (sum of amounts, row count) for the tenant's transactions."""
        query = "SELECT COALESCE(SUM(amount), 0), COUNT(*) FROM points_transactions WHERE tenant_id = ?"
        params: list = [tenant_id]
        if tx_type is not None:
            query += " AND type = ?"
            params.append(tx_type)
        if since is not None:
            query += " AND created_at >= ?"
            params.append(since.astimezone(timezone.utc).isoformat())

        async with self._read() as db:
            async with db.execute(query, params) as cursor:
                row = await cursor.fetchone()
                return int(row[0]), int(row[1])

    @staticmethod
    def _row_to_transaction(row: aiosqlite.Row) -> PointsTransaction:
        return PointsTransaction(
            transaction_id=row["transaction_id"],
            tenant_id=row["tenant_id"],
            type=row["type"],
            amount=row["amount"],
            resulting_balance=row["resulting_balance"],
            description=row["description"],
            metadata=json.loads(row["metadata"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
