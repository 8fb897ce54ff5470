from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Sequence

import httpx

from shipmirror.config import settings
from shipmirror.services.provider.schemas import ProviderReceivingOrder, parse_records
from shipmirror.utils.timeutil import isoformat_z

from . import mappers
from .context import SyncContext, fetch_stage, upsert_stage
from .orchestrator import SessionFactory, run_for_clients
from .results import RunResult, StageResult
from .upserter import RECEIVING_ORDERS, upsert_rows
from .window import plan_explicit_window


def _receiving_pass(days_back: int):
    async def client_pass(ctx: SyncContext) -> None:
        window = plan_explicit_window(ctx.now - timedelta(days=days_back), ctx.now)
        ctx.window = window
        outcome = await ctx.fetcher.fetch_numbered(
            "/receiving",
            params={"InsertStartDate": isoformat_z(window.start), "InsertEndDate": isoformat_z(window.end)},
            page_size=settings.RECEIVING_PAGE_SIZE,
        )
        if ctx.apply(fetch_stage("fetch_receiving", "receiving_orders", outcome)).halt:
            return

        records, invalid = parse_records(ProviderReceivingOrder, outcome.items)
        if invalid:
            ctx.apply(
                StageResult(name="parse_receiving", counts={"receiving_orders_invalid": len(invalid)}, errors=invalid)
            )
        rows = [mappers.map_receiving_order(r, client_id=ctx.client_id, merchant_id=ctx.merchant_id) for r in records]
        ctx.apply(
            upsert_stage(
                "receiving_orders",
                "receiving_orders",
                upsert_rows(ctx.session, RECEIVING_ORDERS, rows, now=ctx.now),
            )
        )

    return client_pass


async def sync_receiving_orders(
    *,
    days_back: Optional[int] = None,
    session_factory: Optional[SessionFactory] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    now: Optional[datetime] = None,
    client_ids: Optional[Sequence[str]] = None,
) -> RunResult:
    """Warehouse receiving orders inserted in the last ``days_back`` days."""
    days = days_back if days_back is not None else settings.RECEIVING_DAYS_BACK
    if days <= 0:
        raise ValueError("days_back must be positive")
    return await run_for_clients(
        "receiving",
        _receiving_pass(days),
        session_factory=session_factory,
        transport=transport,
        now=now,
        client_ids=client_ids,
    )
