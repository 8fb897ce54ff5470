"""Run one sync job from the command line.

    python -m shipmirror.workers.run_sync incremental --minutes-back 5
    python -m shipmirror.workers.run_sync reconcile --days-back 20
    python -m shipmirror.workers.run_sync transactions --days-back 3
    python -m shipmirror.workers.run_sync returns | receiving | timelines | backfill

Prints the run result as JSON; exits non-zero when the run did not execute.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from shipmirror.config import settings
from shipmirror.services.sync.backfill import backfill_missing_items
from shipmirror.services.sync.orchestrator import sync_all
from shipmirror.services.sync.receiving import sync_receiving_orders
from shipmirror.services.sync.results import RunResult
from shipmirror.services.sync.returns import sync_returns
from shipmirror.services.sync.timelines import sync_all_undelivered_timelines
from shipmirror.services.sync.transactions import sync_all_transactions

JOBS = ("incremental", "reconcile", "transactions", "returns", "receiving", "timelines", "backfill")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="run_sync", description="Run one provider sync job")
    parser.add_argument("job", choices=JOBS)
    parser.add_argument("--minutes-back", type=int, default=None)
    parser.add_argument("--days-back", type=int, default=None)
    parser.add_argument("--limit", type=int, default=None, help="per-client cap for returns/timelines/backfill")
    parser.add_argument("--client", action="append", dest="client_ids", help="restrict to client id (repeatable)")
    return parser


async def run_job(args: argparse.Namespace) -> RunResult:
    clients = args.client_ids
    if args.job == "incremental":
        return await sync_all(minutes_back=args.minutes_back, client_ids=clients)
    if args.job == "reconcile":
        days = args.days_back if args.days_back is not None else settings.RECONCILE_DAYS_BACK
        return await sync_all(days_back=days, client_ids=clients)
    if args.job == "transactions":
        return await sync_all_transactions(days_back=args.days_back, client_ids=clients)
    if args.job == "returns":
        return await sync_returns(max_per_client=args.limit, client_ids=clients)
    if args.job == "receiving":
        return await sync_receiving_orders(days_back=args.days_back, client_ids=clients)
    if args.job == "timelines":
        return await sync_all_undelivered_timelines(
            max_shipments=args.limit, max_age_days=args.days_back, client_ids=clients
        )
    return await backfill_missing_items(days_back=args.days_back, max_parents=args.limit, client_ids=clients)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    result = asyncio.run(run_job(args))
    print(json.dumps(result.to_dict(), indent=2, default=str))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
