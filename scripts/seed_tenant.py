"""Seed a development tenant: trial points, datasets and a messaging bot."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from rag_responder.config.settings import Settings
from rag_responder.points.ledger import PointsLedger
from rag_responder.storage.sqlite_ledger_store import SQLiteLedgerStore
from rag_responder.storage.sqlite_tenant_store import SQLiteTenantStore


def parse_dataset(value: str) -> tuple[str, float]:
    """Parse ``dataset_id[:weight]``."""
    dataset_id, _, weight = value.partition(":")
    return dataset_id, float(weight) if weight else 1.0


async def main(args: argparse.Namespace) -> None:
    settings = Settings()
    for path in [settings.ledger_db_path, settings.tenant_db_path]:
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    ledger_store = SQLiteLedgerStore(settings.ledger_db_path)
    await ledger_store.initialize()
    tenant_store = SQLiteTenantStore(settings.tenant_db_path)
    await tenant_store.initialize()

    ledger = PointsLedger(
        ledger_store,
        points_per_response=settings.points_per_response,
        low_balance_threshold=settings.low_points_threshold,
        free_trial_points=settings.free_trial_points,
    )
    grant = await ledger.grant_free_trial(args.tenant)
    print(f"Trial grant for {args.tenant}: granted={grant.granted} balance={grant.balance}")

    datasets = [parse_dataset(d) for d in args.dataset]
    for dataset_id, weight in datasets:
        await tenant_store.save_dataset(dataset_id, args.tenant, weight)
        print(f"Dataset {dataset_id} (weight {weight})")

    if args.bot:
        await tenant_store.save_messaging_bot(
            bot_id=args.bot,
            tenant_id=args.tenant,
            chatbot_id=args.chatbot or args.bot,
            dataset_ids=[d for d, _ in datasets],
            max_response_length=args.max_length,
            welcome_message=args.welcome,
        )
        print(f"Messaging bot {args.bot} linked to {len(datasets)} dataset(s)")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--tenant", required=True)
    parser.add_argument("--dataset", action="append", default=[], help="dataset_id[:weight]")
    parser.add_argument("--bot", help="messaging platform bot id")
    parser.add_argument("--chatbot", help="chatbot id (defaults to the bot id)")
    parser.add_argument("--max-length", type=int, default=None)
    parser.add_argument("--welcome", default=None)
    asyncio.run(main(parser.parse_args()))
