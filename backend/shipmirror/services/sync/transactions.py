"""Billing transaction sync.

With an account-level token configured the whole feed is pulled once and
each transaction is attributed by looking up its reference locally:
``Shipment`` -> shipments, ``Return`` -> returns, ``WRO`` -> receiving
orders. Anything that does not resolve to exactly one client is stored with
``client_id = NULL`` and left for downstream attribution. Without that token
every client's own feed is pulled and attributed to that client.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional, Sequence, Set

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from shipmirror.config import settings
from shipmirror.models_sqlalchemy import SessionLocal
from shipmirror.models_sqlalchemy.models import ReceivingOrder, Return, Shipment
from shipmirror.services.provider.schemas import ProviderTransaction, parse_records
from shipmirror.utils.logger import logger
from shipmirror.utils.timeutil import isoformat_z, utcnow

from . import mappers
from .context import SyncContext, fetch_stage, upsert_stage
from .orchestrator import SessionFactory, run_for_clients, run_with_token
from .results import RunResult, StageResult
from .upserter import TRANSACTIONS, upsert_rows
from .window import SyncWindow, plan_explicit_window

PARENT_SCOPE = "parent"

# reference_type -> (model, natural key column)
REFERENCE_LOOKUPS = {
    "Shipment": (Shipment, "provider_shipment_id"),
    "Return": (Return, "provider_return_id"),
    "WRO": (ReceivingOrder, "provider_receiving_id"),
}
LOOKUP_CHUNK = 500


def transactions_window(
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    days_back: Optional[int] = None,
    now: Optional[datetime] = None,
) -> SyncWindow:
    if start is not None or end is not None:
        if start is None or end is None:
            raise ValueError("start and end must be given together")
        return plan_explicit_window(start, end)
    now = now or utcnow()
    days = days_back if days_back is not None else settings.TRANSACTIONS_DAYS_BACK
    if days <= 0:
        raise ValueError("days_back must be positive")
    return plan_explicit_window(now - timedelta(days=days), now)


def _lookup_clients(db: Session, model, column: str, keys: Set[str]) -> Dict[str, Optional[str]]:
    """Map reference keys to a client id; keys owned by several clients map to None."""
    owners: Dict[str, Set[str]] = defaultdict(set)
    key_col = getattr(model, column)
    ordered = sorted(keys)
    for i in range(0, len(ordered), LOOKUP_CHUNK):
        chunk = ordered[i : i + LOOKUP_CHUNK]
        for key, client_id in db.execute(select(key_col, model.client_id).where(key_col.in_(chunk))):
            owners[str(key)].add(client_id)
    return {key: (next(iter(ids)) if len(ids) == 1 else None) for key, ids in owners.items()}


def resolve_transaction_clients(db: Session, records: Iterable[ProviderTransaction]) -> Dict[str, Optional[str]]:
    """transaction_id -> client_id (None when unresolved)."""
    records = list(records)
    wanted: Dict[str, Set[str]] = defaultdict(set)
    for tx in records:
        if tx.reference_type in REFERENCE_LOOKUPS and tx.reference_id:
            wanted[tx.reference_type].add(tx.reference_id)

    resolved: Dict[str, Dict[str, Optional[str]]] = {}
    for ref_type, keys in wanted.items():
        model, column = REFERENCE_LOOKUPS[ref_type]
        resolved[ref_type] = _lookup_clients(db, model, column, keys)

    return {
        tx.transaction_id: resolved.get(tx.reference_type or "", {}).get(tx.reference_id or "")
        for tx in records
    }


async def _fetch_and_store(ctx: SyncContext, window: SyncWindow, *, attribute_locally: bool) -> None:
    ctx.window = window
    outcome = await ctx.fetcher.fetch_cursor(
        "/transactions:query",
        method="POST",
        json_body={
            "from_date": isoformat_z(window.start),
            "to_date": isoformat_z(window.end),
            "page_size": settings.TRANSACTIONS_PAGE_SIZE,
        },
    )
    fetched = ctx.apply(fetch_stage("fetch_transactions", "transactions", outcome))
    if fetched.halt:
        return

    records, invalid = parse_records(ProviderTransaction, outcome.items)
    if invalid:
        ctx.apply(StageResult(name="parse_transactions", counts={"transactions_invalid": len(invalid)}, errors=invalid))

    if attribute_locally:
        owners = resolve_transaction_clients(ctx.session, records)
    else:
        owners = {tx.transaction_id: ctx.client_id for tx in records}

    rows = [mappers.map_transaction(tx, client_id=owners.get(tx.transaction_id)) for tx in records]
    unattributed = sum(1 for r in rows if r["client_id"] is None)
    stage = upsert_stage("transactions", "transactions", upsert_rows(ctx.session, TRANSACTIONS, rows, now=ctx.now))
    stage.counts["transactions_unattributed"] = unattributed
    ctx.apply(stage)
    logger.info(
        "[transactions] scope=%s fetched=%s created=%s unattributed=%s",
        ctx.client_id,
        len(outcome.items),
        stage.counts.get("transactions_created", 0),
        unattributed,
    )


async def sync_all_transactions(
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    days_back: Optional[int] = None,
    session_factory: Optional[SessionFactory] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    now: Optional[datetime] = None,
    client_ids: Optional[Sequence[str]] = None,
) -> RunResult:
    window = transactions_window(start=start, end=end, days_back=days_back, now=now)

    parent_token = (settings.PROVIDER_PARENT_TOKEN or "").strip()
    if not parent_token:
        async def client_pass(ctx: SyncContext) -> None:
            await _fetch_and_store(ctx, window, attribute_locally=False)

        return await run_for_clients(
            "transactions",
            client_pass,
            session_factory=session_factory,
            transport=transport,
            now=now,
            client_ids=client_ids,
        )

    async def parent_pass(ctx: SyncContext) -> None:
        await _fetch_and_store(ctx, window, attribute_locally=True)

    session_factory = session_factory or SessionLocal
    result = RunResult(sync_type="transactions")
    try:
        session = session_factory()
        try:
            summary = await run_with_token(
                parent_token,
                parent_pass,
                client_id=PARENT_SCOPE,
                client_name="parent account",
                merchant_id=None,
                session=session,
                now=now,
                transport=transport,
            )
        finally:
            session.close()
        result.add_tenant(summary)
    except Exception as exc:
        logger.exception("[transactions] run failed: %s", exc)
        return RunResult.failed("transactions", f"{exc.__class__.__name__}: {exc}", started_at=result.started_at)
    return result.finish()
