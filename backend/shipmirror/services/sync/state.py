from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from shipmirror.models_sqlalchemy.sync_state import SyncState
from shipmirror.utils.timeutil import as_utc, utcnow

FAMILY_ORDERS = "orders"


def get_or_create_sync_state(db: Session, *, client_id: str, sync_family: str) -> SyncState:
    state = (
        db.query(SyncState)
        .filter(
            SyncState.client_id == client_id,
            SyncState.sync_family == sync_family,
        )
        .first()
    )
    if state:
        return state

    state = SyncState(
        id=str(uuid4()),
        client_id=client_id,
        sync_family=sync_family,
        cursor_value=None,
        last_run_at=None,
        last_error=None,
    )
    db.add(state)
    db.commit()
    db.refresh(state)
    return state


def current_cursor(state: SyncState) -> Optional[datetime]:
    return as_utc(state.cursor_value)


def mark_sync_run_result(
    db: Session,
    state: SyncState,
    *,
    cursor_value: Optional[datetime],
    error: Optional[str] = None,
) -> None:
    """Update sync state after a run.

    - If error is None: advance cursor and clear last_error.
    - If error is not None: record last_error but keep cursor as-is.
    """

    state.last_run_at = utcnow()
    if error:
        state.last_error = error
    else:
        state.last_error = None
        if cursor_value is not None:
            state.cursor_value = cursor_value
    db.commit()
