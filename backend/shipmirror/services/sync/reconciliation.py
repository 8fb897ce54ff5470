"""Soft-delete detection by full-listing diff.

For a wide (days-back) window the provider listing is treated as the complete
truth for that window: any locally stored, not-yet-deleted order created in
the window that the listing does not contain gets ``deleted_at = now``, and
likewise any shipment whose parent order was created in the window. The diff
only runs on a complete listing; a truncated one (rate limit, error, page cap)
skips reconciliation for the client rather than guessing.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Set, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from shipmirror.config import settings
from shipmirror.models_sqlalchemy.models import Order, Shipment
from shipmirror.services.provider.errors import (
    ProviderError,
    ProviderNotFoundError,
    ProviderRateLimitError,
)
from shipmirror.services.provider.paging import FetchOutcome
from shipmirror.utils.logger import logger

from .context import SyncContext
from .results import StageResult
from .window import SyncWindow

RECONCILE_RAN = "ran"
RECONCILE_SKIPPED_INCOMPLETE = "skipped_incomplete_listing"
RECONCILE_NOT_APPLICABLE = "not_applicable"


def upstream_ids(raw_orders: Iterable[Any]) -> Tuple[Set[str], Set[str]]:
    """Order and shipment ids present in a raw listing.

    Read from the raw payload rather than validated records so that a record
    which failed validation still counts as present upstream.
    """
    order_ids: Set[str] = set()
    shipment_ids: Set[str] = set()
    for raw in raw_orders:
        if not isinstance(raw, dict):
            continue
        if raw.get("id") is not None:
            order_ids.add(str(raw["id"]))
        for shipment in raw.get("shipments") or []:
            if isinstance(shipment, dict) and shipment.get("id") is not None:
                shipment_ids.add(str(shipment["id"]))
    return order_ids, shipment_ids


def _window_bounds(window: SyncWindow):
    return Order.order_created_at >= window.start, Order.order_created_at < window.end


def order_candidates(db: Session, client_id: str, window: SyncWindow, listed: Set[str]) -> List[Tuple[str, str]]:
    lower, upper = _window_bounds(window)
    rows = db.execute(
        select(Order.id, Order.provider_order_id)
        .where(
            Order.client_id == client_id,
            Order.deleted_at.is_(None),
            lower,
            upper,
        )
        .order_by(Order.order_created_at, Order.provider_order_id)
    ).all()
    return [(row_id, key) for row_id, key in rows if key not in listed]


def shipment_candidates(db: Session, client_id: str, window: SyncWindow, listed: Set[str]) -> List[Tuple[str, str]]:
    lower, upper = _window_bounds(window)
    rows = db.execute(
        select(Shipment.id, Shipment.provider_shipment_id)
        .join(Order, Order.id == Shipment.order_id)
        .where(
            Shipment.client_id == client_id,
            Shipment.deleted_at.is_(None),
            lower,
            upper,
        )
        .order_by(Order.order_created_at, Shipment.provider_shipment_id)
    ).all()
    return [(row_id, key) for row_id, key in rows if key not in listed]


def soft_delete(db: Session, model, row_ids: List[str], now: datetime) -> int:
    if not row_ids:
        return 0
    res = db.execute(
        update(model)
        .where(model.id.in_(row_ids), model.deleted_at.is_(None))
        .values(deleted_at=now, updated_at=now)
    )
    db.commit()
    return res.rowcount or 0


async def _verify_missing(ctx: SyncContext, entity: str, candidates: List[Tuple[str, str]], stage: StageResult) -> List[str]:
    """Keep only candidates the provider answers with 404."""
    confirmed: List[str] = []
    lookup = ctx.api.get_order if entity == "orders" else ctx.api.get_shipment
    for index, (row_id, key) in enumerate(candidates):
        try:
            await lookup(key)
        except ProviderNotFoundError:
            confirmed.append(row_id)
            continue
        except ProviderRateLimitError:
            remaining = len(candidates) - index
            stage.warnings.append(f"rate limited while verifying {entity}; {remaining} candidate(s) left for next run")
            break
        except ProviderError as exc:
            stage.warnings.append(f"could not verify {entity} {key}: {exc}")
            continue
        stage.counts[f"{entity}_verified_present"] = stage.counts.get(f"{entity}_verified_present", 0) + 1
    return confirmed


async def reconcile(ctx: SyncContext, window: SyncWindow, outcome: FetchOutcome) -> StageResult:
    stage = StageResult(name="reconcile")
    if not window.runs_reconciliation:
        ctx.reconciliation = RECONCILE_NOT_APPLICABLE
        return stage
    if not outcome.complete:
        ctx.reconciliation = RECONCILE_SKIPPED_INCOMPLETE
        stage.warnings.append(f"skipped: order listing incomplete ({outcome.stop_reason})")
        logger.warning(
            "[reconcile] client=%s skipped, listing incomplete stop=%s", ctx.client_id, outcome.stop_reason
        )
        return stage

    listed_orders, listed_shipments = upstream_ids(outcome.items)
    orders = order_candidates(ctx.session, ctx.client_id, window, listed_orders)
    shipments = shipment_candidates(ctx.session, ctx.client_id, window, listed_shipments)

    if settings.RECONCILE_VERIFY_CANDIDATES:
        order_ids = await _verify_missing(ctx, "orders", orders, stage)
        shipment_ids = await _verify_missing(ctx, "shipments", shipments, stage)
    else:
        order_ids = [row_id for row_id, _ in orders]
        shipment_ids = [row_id for row_id, _ in shipments]

    stage.counts["orders_deleted"] = soft_delete(ctx.session, Order, order_ids, ctx.now)
    stage.counts["shipments_deleted"] = soft_delete(ctx.session, Shipment, shipment_ids, ctx.now)
    ctx.reconciliation = RECONCILE_RAN
    logger.info(
        "[reconcile] client=%s candidates orders=%s shipments=%s deleted orders=%s shipments=%s",
        ctx.client_id,
        len(orders),
        len(shipments),
        stage.counts["orders_deleted"],
        stage.counts["shipments_deleted"],
    )
    return stage
