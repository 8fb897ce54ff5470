"""Returns referenced by billing but not yet mirrored.

Return ids come from attributed ``Return`` transactions; the ones missing
from ``returns`` are fetched one at a time, capped per client per run. A
return the provider answers with 404 is stamped on its transactions
(``reference_lookup_failed_at``) and queued behind never-tried ids, so a dead
reference cannot hold a slot under the cap forever.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import httpx
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from shipmirror.config import settings
from shipmirror.models_sqlalchemy.models import Return, Transaction
from shipmirror.services.provider.schemas import ProviderReturn, parse_records
from shipmirror.utils.timeutil import as_utc

from . import mappers
from .context import SyncContext, upsert_stage
from .orchestrator import SessionFactory, run_for_clients
from .results import RunResult, StageResult
from .single_fetch import fetch_each
from .upserter import RETURNS, upsert_rows


NEVER_TRIED = datetime.min.replace(tzinfo=timezone.utc)


def missing_return_ids(db: Session, client_id: str, limit: int) -> List[str]:
    referenced = {
        ref: as_utc(failed_at)
        for ref, failed_at in db.execute(
            select(Transaction.reference_id, func.max(Transaction.reference_lookup_failed_at))
            .where(
                Transaction.client_id == client_id,
                Transaction.reference_type == "Return",
                Transaction.reference_id.is_not(None),
            )
            .group_by(Transaction.reference_id)
        )
    }
    if not referenced:
        return []
    existing = {
        key
        for (key,) in db.execute(select(Return.provider_return_id).where(Return.client_id == client_id))
    }
    wanted = [ref for ref in referenced if ref not in existing]
    wanted.sort(key=lambda ref: (referenced[ref] is not None, referenced[ref] or NEVER_TRIED, ref))
    return wanted[:limit]


def mark_lookup_failed(db: Session, client_id: str, return_ids: Sequence[Any], now: datetime) -> int:
    if not return_ids:
        return 0
    res = db.execute(
        update(Transaction)
        .where(
            Transaction.client_id == client_id,
            Transaction.reference_type == "Return",
            Transaction.reference_id.in_([str(r) for r in return_ids]),
        )
        .values(reference_lookup_failed_at=now)
    )
    db.commit()
    return res.rowcount or 0


def _returns_pass(max_per_client: int):
    async def client_pass(ctx: SyncContext) -> None:
        wanted = missing_return_ids(ctx.session, ctx.client_id, max_per_client)
        if not wanted:
            return
        not_found: List[Any] = []
        fetched, stage = await fetch_each(
            "fetch_returns", "returns", wanted, ctx.api.get_return, not_found=not_found
        )
        ctx.apply(stage)
        mark_lookup_failed(ctx.session, ctx.client_id, not_found, ctx.now)

        records, invalid = parse_records(ProviderReturn, [payload for _, payload in fetched])
        if invalid:
            ctx.apply(StageResult(name="parse_returns", counts={"returns_invalid": len(invalid)}, errors=invalid))
        rows = [mappers.map_return(r, client_id=ctx.client_id, merchant_id=ctx.merchant_id) for r in records]
        ctx.apply(upsert_stage("returns", "returns", upsert_rows(ctx.session, RETURNS, rows, now=ctx.now)))

    return client_pass


async def sync_returns(
    *,
    max_per_client: Optional[int] = None,
    session_factory: Optional[SessionFactory] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    now: Optional[datetime] = None,
    client_ids: Optional[Sequence[str]] = None,
) -> RunResult:
    limit = max_per_client if max_per_client is not None else settings.RETURNS_MAX_PER_CLIENT
    return await run_for_clients(
        "returns",
        _returns_pass(limit),
        session_factory=session_factory,
        transport=transport,
        now=now,
        client_ids=client_ids,
    )
