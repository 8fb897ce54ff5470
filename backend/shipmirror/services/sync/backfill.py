"""Re-fetch recent orders whose child rows never arrived.

Looks at orders created in the last ``days_back`` days that have no order
items, or that have a live shipment without shipment items, at most
``max_parents`` per client. Each is fetched individually and pushed through
the normal order stages.

Some parents never get children (an order upstream without products, a 404).
Every answered re-fetch stamps ``children_checked_at``, and candidates are
picked never-checked first, then least recently checked, so such parents rotate
to the back and older fixable ones are reached. Repeated runs converge without
unbounded run time.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Optional, Sequence, Tuple

import httpx
from sqlalchemy import and_, exists, or_, select, update
from sqlalchemy.orm import Session

from shipmirror.config import settings
from shipmirror.models_sqlalchemy.models import Order, OrderItem, Shipment, ShipmentItem
from shipmirror.utils.logger import logger

from .context import SyncContext
from .orchestrator import SessionFactory, run_for_clients
from .pipeline import apply_order_batch, load_order_lookups, parse_orders
from .results import RunResult
from .single_fetch import fetch_each


def orders_missing_children(db: Session, client_id: str, since: datetime, limit: int) -> List[Tuple[str, str]]:
    has_items = exists().where(OrderItem.order_id == Order.id)
    shipment_without_items = exists().where(
        and_(
            Shipment.order_id == Order.id,
            Shipment.deleted_at.is_(None),
            ~exists().where(ShipmentItem.shipment_id == Shipment.id),
        )
    )
    rows = db.execute(
        select(Order.id, Order.provider_order_id)
        .where(
            Order.client_id == client_id,
            Order.deleted_at.is_(None),
            Order.order_created_at >= since,
            or_(~has_items, shipment_without_items),
        )
        .order_by(
            Order.children_checked_at.is_not(None),
            Order.children_checked_at.asc(),
            Order.order_created_at.desc(),
        )
        .limit(limit)
    ).all()
    return [(row_id, key) for row_id, key in rows]


def mark_children_checked(db: Session, client_id: str, provider_order_ids: Sequence[Any], now: datetime) -> int:
    if not provider_order_ids:
        return 0
    res = db.execute(
        update(Order)
        .where(Order.client_id == client_id, Order.provider_order_id.in_([str(k) for k in provider_order_ids]))
        .values(children_checked_at=now)
    )
    db.commit()
    return res.rowcount or 0


def _backfill_pass(days_back: int, max_parents: int):
    async def client_pass(ctx: SyncContext) -> None:
        parents = orders_missing_children(ctx.session, ctx.client_id, ctx.now - timedelta(days=days_back), max_parents)
        ctx.counts["backfill_candidates"] += len(parents)
        if not parents:
            return
        logger.info("[backfill] client=%s candidates=%s", ctx.client_id, len(parents))

        missing: List[Any] = []
        fetched, stage = await fetch_each(
            "fetch_orders", "orders", [key for _, key in parents], ctx.api.get_order, not_found=missing
        )
        ctx.apply(stage)

        batch = parse_orders(ctx, [payload for _, payload in fetched])
        if batch.orders:
            batch.lookups = await load_order_lookups(ctx)
            apply_order_batch(ctx, batch)

        # Only parents the provider actually answered; rate-limited ones keep their place.
        checked = [key for key, _ in fetched] + missing
        mark_children_checked(ctx.session, ctx.client_id, checked, ctx.now)

    return client_pass


async def backfill_missing_items(
    *,
    days_back: Optional[int] = None,
    max_parents: Optional[int] = None,
    session_factory: Optional[SessionFactory] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    now: Optional[datetime] = None,
    client_ids: Optional[Sequence[str]] = None,
) -> RunResult:
    days = days_back if days_back is not None else settings.BACKFILL_DAYS_BACK
    limit = max_parents if max_parents is not None else settings.BACKFILL_MAX_PARENTS
    if days <= 0 or limit <= 0:
        raise ValueError("days_back and max_parents must be positive")
    return await run_for_clients(
        "backfill",
        _backfill_pass(days, limit),
        session_factory=session_factory,
        transport=transport,
        now=now,
        client_ids=client_ids,
    )
