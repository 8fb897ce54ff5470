"""Read access to mirrored transactions for downstream consumers."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from shipmirror.models_sqlalchemy.models import Transaction


def list_transactions_for_client(
    db: Session,
    client_id: str,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[Transaction]:
    """Transactions attributed to one client. Unattributed rows never match."""
    if not client_id:
        return []
    query = db.query(Transaction).filter(Transaction.client_id == client_id)
    if start is not None:
        query = query.filter(Transaction.charge_date >= start)
    if end is not None:
        query = query.filter(Transaction.charge_date < end)
    query = query.order_by(Transaction.charge_date.asc(), Transaction.provider_transaction_id.asc())
    if limit:
        query = query.limit(limit)
    return query.all()


def list_unattributed_transactions(db: Session, *, limit: Optional[int] = None) -> List[Transaction]:
    query = (
        db.query(Transaction)
        .filter(Transaction.client_id.is_(None))
        .order_by(Transaction.charge_date.asc(), Transaction.provider_transaction_id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()
