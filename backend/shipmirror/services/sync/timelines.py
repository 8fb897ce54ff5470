"""Shipment timeline checkpoints, on their own cadence.

Only shipments that are still moving are polled: not soft-deleted, not in a
terminal status, timeline not yet confirmed complete, created within
``max_age_days``. Newest first, at most ``max_shipments`` per client. Events
are appended (existing checkpoints are never rewritten); a delivered
checkpoint marks the timeline complete so the shipment drops out of future
scans.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

import httpx
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from shipmirror.config import settings
from shipmirror.models_sqlalchemy.models import Shipment
from shipmirror.services.provider.schemas import ProviderTimelineEvent, parse_records
from shipmirror.utils.logger import logger

from . import mappers
from .context import SyncContext, upsert_stage
from .orchestrator import SessionFactory, run_for_clients
from .results import RunResult
from .single_fetch import fetch_each
from .upserter import TIMELINE_EVENTS, UpsertResult, insert_new_rows

TERMINAL_STATUSES = ("Delivered", "Cancelled")


def timeline_candidates(
    db: Session, client_id: str, *, since: datetime, limit: int
) -> List[Tuple[str, str]]:
    rows = db.execute(
        select(Shipment.id, Shipment.provider_shipment_id)
        .where(
            Shipment.client_id == client_id,
            Shipment.deleted_at.is_(None),
            Shipment.timeline_completed_at.is_(None),
            or_(Shipment.status.is_(None), Shipment.status.not_in(TERMINAL_STATUSES)),
            Shipment.shipment_created_at >= since,
        )
        .order_by(Shipment.shipment_created_at.desc())
        .limit(limit)
    ).all()
    return [(row_id, key) for row_id, key in rows]


def mark_timeline_complete(db: Session, shipment_row_id: str, delivered_at: datetime, now: datetime) -> None:
    db.execute(
        update(Shipment)
        .where(Shipment.id == shipment_row_id, Shipment.timeline_completed_at.is_(None))
        .values(
            timeline_completed_at=now,
            delivered_at=func.coalesce(Shipment.delivered_at, delivered_at),
            updated_at=now,
        )
    )
    db.commit()


def _timeline_pass(max_shipments: int, max_age_days: int):
    async def client_pass(ctx: SyncContext) -> None:
        candidates = timeline_candidates(
            ctx.session, ctx.client_id, since=ctx.now - timedelta(days=max_age_days), limit=max_shipments
        )
        ctx.counts["timeline_candidates"] += len(candidates)
        if not candidates:
            return

        row_ids = dict((key, row_id) for row_id, key in candidates)
        fetched, stage = await fetch_each(
            "fetch_timelines", "timelines", [key for _, key in candidates], ctx.api.get_shipment_timeline
        )
        ctx.apply(stage)

        inserted = UpsertResult()
        completed = 0
        invalid: List[str] = []
        for key, payload in fetched:
            events, bad = parse_records(ProviderTimelineEvent, payload if isinstance(payload, list) else [])
            invalid.extend(bad)
            shipment_row_id = row_ids[key]
            rows = [
                row
                for row in (
                    mappers.map_timeline_event(e, client_id=ctx.client_id, shipment_row_id=shipment_row_id)
                    for e in events
                )
                if row is not None
            ]
            inserted.merge(insert_new_rows(ctx.session, TIMELINE_EVENTS, rows, now=ctx.now))

            delivered = [r["occurred_at"] for r in rows if r["log_type_id"] == mappers.DELIVERED_LOG_TYPE]
            if delivered:
                mark_timeline_complete(ctx.session, shipment_row_id, min(delivered), ctx.now)
                completed += 1

        stage = upsert_stage("timeline_events", "timeline_events", inserted, extra_errors=invalid)
        stage.counts["timelines_completed"] = completed
        ctx.apply(stage)
        logger.info(
            "[timelines] client=%s polled=%s new_events=%s completed=%s",
            ctx.client_id,
            len(fetched),
            inserted.created,
            completed,
        )

    return client_pass


async def sync_all_undelivered_timelines(
    *,
    max_shipments: Optional[int] = None,
    max_age_days: Optional[int] = None,
    session_factory: Optional[SessionFactory] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    now: Optional[datetime] = None,
    client_ids: Optional[Sequence[str]] = None,
) -> RunResult:
    limit = max_shipments if max_shipments is not None else settings.TIMELINE_MAX_SHIPMENTS
    age = max_age_days if max_age_days is not None else settings.TIMELINE_MAX_AGE_DAYS
    if limit <= 0 or age <= 0:
        raise ValueError("max_shipments and max_age_days must be positive")
    return await run_for_clients(
        "timelines",
        _timeline_pass(limit, age),
        session_factory=session_factory,
        transport=transport,
        now=now,
        client_ids=client_ids,
    )
