"""Order/shipment pipeline for one client.

Stages run in dependency order (orders, shipments, order items, shipment
items, cartons) because children reference parent row ids. Every stage
returns a ``StageResult``; none of them raise for row-level problems.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from sqlalchemy import select

from shipmirror.config import settings
from shipmirror.models_sqlalchemy.models import FulfillmentCenter, Order, Shipment
from shipmirror.services.provider.errors import ProviderError
from shipmirror.services.provider.paging import FetchOutcome
from shipmirror.services.provider.schemas import ProviderOrder, parse_records
from shipmirror.utils.logger import logger
from shipmirror.utils.timeutil import isoformat_z

from . import mappers
from .context import SyncContext, fetch_stage, upsert_stage
from .results import StageResult
from .upserter import (
    ORDER_ITEMS,
    ORDERS,
    SHIPMENT_CARTONS,
    SHIPMENT_ITEMS,
    SHIPMENTS,
    UpsertResult,
    fetch_id_map,
    upsert_rows,
)
from .window import SyncWindow


@dataclass
class OrderBatch:
    orders: List[ProviderOrder] = field(default_factory=list)
    # provider order id -> local orders.id
    order_ids: Dict[str, str] = field(default_factory=dict)
    # provider shipment id -> local shipments.id
    shipment_ids: Dict[str, str] = field(default_factory=dict)
    lookups: mappers.OrderLookups = field(default_factory=mappers.OrderLookups)

    @property
    def upstream_order_ids(self) -> set:
        return {str(o.id) for o in self.orders}

    @property
    def upstream_shipment_ids(self) -> set:
        return {str(s.id) for o in self.orders for s in o.shipments}


async def fetch_orders(ctx: SyncContext, window: SyncWindow) -> FetchOutcome:
    return await ctx.fetcher.fetch_numbered(
        "/order",
        params={"StartDate": isoformat_z(window.start), "EndDate": isoformat_z(window.end)},
        page_size=settings.ORDERS_PAGE_SIZE,
    )


def parse_orders(ctx: SyncContext, raw_orders: List[dict]) -> OrderBatch:
    records, errors = parse_records(ProviderOrder, raw_orders)
    if errors:
        ctx.apply(StageResult(name="parse_orders", counts={"orders_invalid": len(errors)}, errors=errors))
    return OrderBatch(orders=records)


async def load_order_lookups(ctx: SyncContext) -> mappers.OrderLookups:
    """FC countries come from the local table; ship options and channel apps from the provider.

    A provider failure here only leaves the enrichment columns empty, so it is
    recorded as a warning and the batch is still written.
    """
    lookups = mappers.OrderLookups()
    for fc in ctx.session.execute(select(FulfillmentCenter)).scalars():
        lookups.add_fulfillment_center(fc.name, fc.provider_fc_id, fc.country or "US")

    stage = StageResult(name="lookups")
    try:
        for method in await ctx.api.list_shipping_methods():
            level = method.get("service_level") if isinstance(method, dict) else None
            if isinstance(level, dict) and level.get("name") and isinstance(level.get("id"), int):
                lookups.add_ship_option(str(level["name"]), level["id"])
    except ProviderError as exc:
        stage.warnings.append(f"shipping methods unavailable: {exc}")
    try:
        for channel in await ctx.api.list_channels():
            if isinstance(channel, dict) and channel.get("id") and channel.get("application_name"):
                lookups.channel_apps[str(channel["id"])] = channel["application_name"]
    except ProviderError as exc:
        stage.warnings.append(f"channels unavailable: {exc}")
    ctx.apply(stage)
    logger.info(
        "[sync] client=%s lookups fcs=%s ship_options=%s channels=%s",
        ctx.client_id,
        len(lookups.fulfillment_centers),
        len(lookups.ship_options),
        len(lookups.channel_apps),
    )
    return lookups


def stage_upsert_orders(ctx: SyncContext, batch: OrderBatch) -> StageResult:
    rows = [
        mappers.map_order(o, client_id=ctx.client_id, merchant_id=ctx.merchant_id, lookups=batch.lookups)
        for o in batch.orders
    ]
    result = upsert_rows(ctx.session, ORDERS, rows, now=ctx.now)
    batch.order_ids = fetch_id_map(
        ctx.session, Order, "provider_order_id", [r["provider_order_id"] for r in rows], client_id=ctx.client_id
    )
    return upsert_stage("orders", "orders", result)


def stage_upsert_shipments(ctx: SyncContext, batch: OrderBatch) -> StageResult:
    rows = []
    missing_parent: List[str] = []
    for order in batch.orders:
        order_row_id = batch.order_ids.get(str(order.id))
        if not order_row_id:
            if order.shipments:
                missing_parent.append(f"order {order.id} not stored; {len(order.shipments)} shipment(s) skipped")
            continue
        for shipment in order.shipments:
            rows.append(
                mappers.map_shipment(
                    shipment,
                    order,
                    client_id=ctx.client_id,
                    merchant_id=ctx.merchant_id,
                    order_row_id=order_row_id,
                    lookups=batch.lookups,
                )
            )
    result = upsert_rows(ctx.session, SHIPMENTS, rows, now=ctx.now)
    batch.shipment_ids = fetch_id_map(
        ctx.session,
        Shipment,
        "provider_shipment_id",
        [r["provider_shipment_id"] for r in rows],
        client_id=ctx.client_id,
    )
    return upsert_stage("shipments", "shipments", result, extra_errors=missing_parent)


def stage_upsert_order_items(ctx: SyncContext, batch: OrderBatch) -> StageResult:
    rows = []
    for order in batch.orders:
        order_row_id = batch.order_ids.get(str(order.id))
        if not order_row_id:
            continue
        rows.extend(
            mappers.map_order_item(p, client_id=ctx.client_id, order_row_id=order_row_id) for p in order.products
        )
    return upsert_stage("order_items", "order_items", upsert_rows(ctx.session, ORDER_ITEMS, rows, now=ctx.now))


def stage_upsert_shipment_items(ctx: SyncContext, batch: OrderBatch) -> StageResult:
    rows = []
    for order in batch.orders:
        for shipment in order.shipments:
            shipment_row_id = batch.shipment_ids.get(str(shipment.id))
            if not shipment_row_id:
                continue
            rows.extend(
                mappers.map_shipment_items(
                    shipment, order, client_id=ctx.client_id, shipment_row_id=shipment_row_id
                )
            )
    return upsert_stage(
        "shipment_items", "shipment_items", upsert_rows(ctx.session, SHIPMENT_ITEMS, rows, now=ctx.now)
    )


def stage_upsert_cartons(ctx: SyncContext, batch: OrderBatch) -> StageResult:
    rows = []
    for order in batch.orders:
        for shipment in order.shipments:
            shipment_row_id = batch.shipment_ids.get(str(shipment.id))
            if not shipment_row_id:
                continue
            rows.extend(
                mappers.map_carton(carton, index, client_id=ctx.client_id, shipment_row_id=shipment_row_id)
                for index, carton in enumerate(shipment.parent_cartons)
            )
    return upsert_stage(
        "shipment_cartons", "cartons", upsert_rows(ctx.session, SHIPMENT_CARTONS, rows, now=ctx.now)
    )


ORDER_STAGES = (
    stage_upsert_orders,
    stage_upsert_shipments,
    stage_upsert_order_items,
    stage_upsert_shipment_items,
    stage_upsert_cartons,
)


def apply_order_batch(ctx: SyncContext, batch: OrderBatch) -> OrderBatch:
    for stage in ORDER_STAGES:
        result = ctx.apply(stage(ctx, batch))
        logger.info(
            "[sync] client=%s stage=%s counts=%s errors=%s",
            ctx.client_id,
            result.name,
            result.counts,
            len(result.errors),
        )
    return batch


async def run_order_pipeline(ctx: SyncContext, window: SyncWindow) -> Tuple[FetchOutcome, OrderBatch]:
    """Fetch the window's orders and write orders plus all their children."""
    outcome = await fetch_orders(ctx, window)
    fetched = ctx.apply(fetch_stage("fetch_orders", "orders", outcome))
    logger.info(
        "[sync] client=%s orders fetched=%s pages=%s complete=%s stop=%s",
        ctx.client_id,
        len(outcome.items),
        outcome.pages,
        outcome.complete,
        outcome.stop_reason,
    )
    if fetched.halt:
        return outcome, OrderBatch()

    batch = parse_orders(ctx, outcome.items)
    if batch.orders:
        batch.lookups = await load_order_lookups(ctx)
        apply_order_batch(ctx, batch)
    return outcome, batch
