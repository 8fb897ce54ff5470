"""Scheduler-facing endpoints, one per sync cadence.

Each endpoint runs one entry point to completion and returns its structured
result. When ``CRON_SECRET`` is configured callers must send
``Authorization: Bearer <CRON_SECRET>``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from shipmirror.config import settings
from shipmirror.services.sync.backfill import backfill_missing_items
from shipmirror.services.sync.orchestrator import sync_all
from shipmirror.services.sync.receiving import sync_receiving_orders
from shipmirror.services.sync.results import RunResult
from shipmirror.services.sync.returns import sync_returns
from shipmirror.services.sync.timelines import sync_all_undelivered_timelines
from shipmirror.services.sync.transactions import sync_all_transactions
from shipmirror.utils.logger import logger

router = APIRouter(prefix="/cron", tags=["cron"])

CRON_METHODS = ["GET", "POST"]


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    expected = settings.CRON_SECRET
    if not expected:
        return
    if authorization != f"Bearer {expected}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing cron secret",
        )


async def _run(job: str, run: Awaitable[RunResult]) -> Dict[str, Any]:
    try:
        result = await run
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.info("[cron] %s success=%s errors=%s", job, result.success, len(result.errors))
    return result.to_dict()


@router.api_route("/sync", methods=CRON_METHODS, dependencies=[Depends(require_cron_secret)])
async def cron_sync(minutes_back: Optional[int] = Query(default=None, ge=1)):
    """Per-minute incremental sync of orders and shipments (no reconciliation)."""
    return await _run("sync", sync_all(minutes_back=minutes_back))


@router.api_route("/sync-reconcile", methods=CRON_METHODS, dependencies=[Depends(require_cron_secret)])
async def cron_sync_reconcile(days_back: Optional[int] = Query(default=None, ge=1)):
    """Wide-window sync that also soft-deletes orders/shipments gone upstream."""
    days = days_back if days_back is not None else settings.RECONCILE_DAYS_BACK
    return await _run("sync-reconcile", sync_all(days_back=days))


@router.api_route("/sync-transactions", methods=CRON_METHODS, dependencies=[Depends(require_cron_secret)])
async def cron_sync_transactions(
    days_back: Optional[int] = Query(default=None, ge=1),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
):
    return await _run("sync-transactions", sync_all_transactions(start=start, end=end, days_back=days_back))


@router.api_route("/sync-returns", methods=CRON_METHODS, dependencies=[Depends(require_cron_secret)])
async def cron_sync_returns(max_per_client: Optional[int] = Query(default=None, ge=1)):
    return await _run("sync-returns", sync_returns(max_per_client=max_per_client))


@router.api_route("/sync-receiving", methods=CRON_METHODS, dependencies=[Depends(require_cron_secret)])
async def cron_sync_receiving(days_back: Optional[int] = Query(default=None, ge=1)):
    return await _run("sync-receiving", sync_receiving_orders(days_back=days_back))


@router.api_route("/sync-timelines", methods=CRON_METHODS, dependencies=[Depends(require_cron_secret)])
async def cron_sync_timelines(
    max_shipments: Optional[int] = Query(default=None, ge=1),
    max_age_days: Optional[int] = Query(default=None, ge=1),
):
    return await _run(
        "sync-timelines",
        sync_all_undelivered_timelines(max_shipments=max_shipments, max_age_days=max_age_days),
    )


@router.api_route("/sync-backfill-items", methods=CRON_METHODS, dependencies=[Depends(require_cron_secret)])
async def cron_sync_backfill_items(
    days_back: Optional[int] = Query(default=None, ge=1),
    max_parents: Optional[int] = Query(default=None, ge=1),
):
    return await _run("sync-backfill-items", backfill_missing_items(days_back=days_back, max_parents=max_parents))
