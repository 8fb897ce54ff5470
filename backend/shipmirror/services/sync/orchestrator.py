"""Per-client orchestration shared by every sync entry point.

``run_for_clients`` walks the active clients one at a time, builds a fresh
``SyncContext`` for each (own session, own API client and throttler, own
accumulators) and hands it to an entry point's client pass. A client without
a credential is skipped; a provider or database failure that escapes a pass
is recorded against that client only. Anything else is a programming error
and turns the whole run into ``success=False`` with no client summaries.
"""
from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shipmirror.config import settings
from shipmirror.models_sqlalchemy import SessionLocal
from shipmirror.services.credentials import get_credential, list_active_clients
from shipmirror.services.provider.client import ProviderClient
from shipmirror.services.provider.errors import ProviderError
from shipmirror.services.provider.paging import PagedFetcher
from shipmirror.services.provider.throttle import Throttler
from shipmirror.utils.logger import logger
from shipmirror.utils.timeutil import utcnow

from .context import SyncContext
from .pipeline import run_order_pipeline
from .reconciliation import RECONCILE_SKIPPED_INCOMPLETE, reconcile
from .results import STATUS_SKIPPED, RunResult, TenantSummary
from .state import FAMILY_ORDERS, current_cursor, get_or_create_sync_state, mark_sync_run_result
from .window import plan_incremental_window, plan_reconciliation_window

ClientPass = Callable[[SyncContext], Awaitable[None]]
SessionFactory = Callable[[], Session]


def _client_rows(session_factory: SessionFactory, client_ids: Optional[Sequence[str]]) -> List[Tuple[str, str, Optional[str]]]:
    db = session_factory()
    try:
        return [(c.id, c.company_name, c.merchant_id) for c in list_active_clients(db, client_ids)]
    finally:
        db.close()


async def run_with_token(
    token: str,
    client_pass: ClientPass,
    *,
    client_id: str,
    client_name: Optional[str],
    merchant_id: Optional[str],
    session: Session,
    now: Optional[datetime] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TenantSummary:
    throttler = Throttler.from_rate(settings.PROVIDER_REQUESTS_PER_MINUTE)
    async with ProviderClient(token, throttler=throttler, transport=transport) as api:
        ctx = SyncContext(
            client_id=client_id,
            client_name=client_name,
            merchant_id=merchant_id,
            session=session,
            api=api,
            fetcher=PagedFetcher(api, max_pages=settings.MAX_PAGES),
            now=now or utcnow(),
        )
        try:
            await client_pass(ctx)
        except (ProviderError, SQLAlchemyError) as exc:
            session.rollback()
            logger.error("[sync] client=%s pass aborted: %s", client_id, exc, exc_info=True)
            ctx.errors.append(f"pass aborted: {exc}")
            ctx.halted = True
        ctx.counts["api_requests"] += api.request_count
        return ctx.summary()


async def run_for_clients(
    sync_type: str,
    client_pass: ClientPass,
    *,
    session_factory: Optional[SessionFactory] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    now: Optional[datetime] = None,
    client_ids: Optional[Sequence[str]] = None,
) -> RunResult:
    session_factory = session_factory or SessionLocal
    result = RunResult(sync_type=sync_type)
    logger.info("[%s] run starting", sync_type)

    try:
        clients = _client_rows(session_factory, client_ids)
        for client_id, client_name, merchant_id in clients:
            session = session_factory()
            try:
                token = get_credential(session, client_id)
                if token is None:
                    logger.info("[%s] client=%s skipped: no credential", sync_type, client_id)
                    result.add_tenant(
                        TenantSummary(client_id=client_id, client_name=client_name, status=STATUS_SKIPPED)
                    )
                    continue
                summary = await run_with_token(
                    token,
                    client_pass,
                    client_id=client_id,
                    client_name=client_name,
                    merchant_id=merchant_id,
                    session=session,
                    now=now,
                    transport=transport,
                )
            finally:
                session.close()
            logger.info(
                "[%s] client=%s status=%s errors=%s warnings=%s",
                sync_type,
                client_id,
                summary.status,
                len(summary.errors),
                len(summary.warnings),
            )
            result.add_tenant(summary)
    except Exception as exc:
        logger.exception("[%s] run failed: %s", sync_type, exc)
        return RunResult.failed(sync_type, f"{exc.__class__.__name__}: {exc}", started_at=result.started_at)

    result.finish()
    logger.info(
        "[%s] run finished clients=%s errors=%s duration_ms=%s",
        sync_type,
        len(result.tenants),
        len(result.errors),
        result.duration_ms,
    )
    return result


def _orders_pass(*, minutes_back: Optional[int], days_back: Optional[int]) -> ClientPass:
    async def client_pass(ctx: SyncContext) -> None:
        state = None
        if days_back is not None:
            window = plan_reconciliation_window(days_back=days_back, now=ctx.now)
        else:
            state = get_or_create_sync_state(ctx.session, client_id=ctx.client_id, sync_family=FAMILY_ORDERS)
            window = plan_incremental_window(
                minutes_back=minutes_back,
                overlap_minutes=settings.SYNC_OVERLAP_MINUTES,
                now=ctx.now,
                cursor=current_cursor(state),
                max_window_hours=settings.SYNC_MAX_WINDOW_HOURS,
            )
        ctx.window = window

        outcome, _ = await run_order_pipeline(ctx, window)
        if ctx.halted:
            if window.runs_reconciliation:
                ctx.reconciliation = RECONCILE_SKIPPED_INCOMPLETE
        else:
            ctx.apply(await reconcile(ctx, window, outcome))

        if state is not None:
            mark_sync_run_result(
                ctx.session,
                state,
                cursor_value=window.end if outcome.complete else None,
                error=None if outcome.complete else (outcome.message or outcome.stop_reason),
            )

    return client_pass


async def sync_all(
    *,
    minutes_back: Optional[int] = None,
    days_back: Optional[int] = None,
    session_factory: Optional[SessionFactory] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    now: Optional[datetime] = None,
    client_ids: Optional[Sequence[str]] = None,
) -> RunResult:
    """Orders, shipments and their children for every active client.

    ``days_back`` selects a reconciliation run (wide window, soft-delete diff);
    otherwise an incremental run over the last ``minutes_back`` minutes plus
    the overlap margin, never reconciling.
    """
    if days_back is not None:
        if days_back <= 0:
            raise ValueError("days_back must be positive")
        sync_type = "reconciliation"
        client_pass = _orders_pass(minutes_back=None, days_back=days_back)
    else:
        minutes_back = minutes_back if minutes_back is not None else settings.SYNC_MINUTES_BACK
        if minutes_back <= 0:
            raise ValueError("minutes_back must be positive")
        sync_type = "incremental"
        client_pass = _orders_pass(minutes_back=minutes_back, days_back=None)

    return await run_for_clients(
        sync_type,
        client_pass,
        session_factory=session_factory,
        transport=transport,
        now=now,
        client_ids=client_ids,
    )
