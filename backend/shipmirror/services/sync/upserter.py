"""Natural-key upserts, one committed statement per row.

Each write is ``INSERT ... ON CONFLICT (natural key) DO UPDATE ... WHERE`` at
least one column actually differs, so re-applying identical data touches
nothing: content and ``updated_at`` stay as they were and the row is counted
as unchanged rather than updated. A failing row is rolled back on its own and
recorded; the rest of the batch continues.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type
from uuid import uuid4

from sqlalchemy import and_, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shipmirror.models_sqlalchemy.models import (
    Order,
    OrderItem,
    ReceivingOrder,
    Return,
    Shipment,
    ShipmentCarton,
    ShipmentItem,
    ShipmentTimelineEvent,
    Transaction,
)
from shipmirror.utils.logger import logger
from shipmirror.utils.timeutil import utcnow

ID_LOOKUP_CHUNK = 500


@dataclass(frozen=True)
class EntitySpec:
    name: str
    model: Type[Any]
    key_columns: Tuple[str, ...]
    # Incoming null never replaces a stored value for these columns.
    coalesce_columns: Tuple[str, ...] = ()


ORDERS = EntitySpec("orders", Order, ("client_id", "provider_order_id"))
# delivered_at may come from the timeline pass while the order payload still
# has no delivery date.
SHIPMENTS = EntitySpec("shipments", Shipment, ("client_id", "provider_shipment_id"), coalesce_columns=("delivered_at",))
ORDER_ITEMS = EntitySpec("order_items", OrderItem, ("order_id", "provider_product_id"))
SHIPMENT_ITEMS = EntitySpec("shipment_items", ShipmentItem, ("shipment_id", "provider_product_id"))
SHIPMENT_CARTONS = EntitySpec("shipment_cartons", ShipmentCarton, ("shipment_id", "carton_index"))
# A later re-fetch that cannot resolve the client must not orphan an
# already attributed transaction.
TRANSACTIONS = EntitySpec("transactions", Transaction, ("provider_transaction_id",), coalesce_columns=("client_id",))
RETURNS = EntitySpec("returns", Return, ("client_id", "provider_return_id"))
RECEIVING_ORDERS = EntitySpec("receiving_orders", ReceivingOrder, ("client_id", "provider_receiving_id"))
TIMELINE_EVENTS = EntitySpec("timeline_events", ShipmentTimelineEvent, ("shipment_id", "log_type_id", "occurred_at"))


@dataclass
class UpsertResult:
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def written(self) -> int:
        return self.created + self.updated

    def merge(self, other: "UpsertResult") -> "UpsertResult":
        self.created += other.created
        self.updated += other.updated
        self.unchanged += other.unchanged
        self.failed += other.failed
        self.errors.extend(other.errors)
        return self


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"natural-key upsert is not supported on dialect {dialect!r}")


def _key_clause(table, spec: EntitySpec, row: Dict[str, Any]):
    return and_(*[table.c[col] == row[col] for col in spec.key_columns])


def _missing_key(spec: EntitySpec, row: Dict[str, Any]) -> Optional[str]:
    missing = [col for col in spec.key_columns if row.get(col) is None]
    if not missing:
        return None
    return f"{spec.name}: row skipped, missing key column(s) {', '.join(missing)}"


def _describe(spec: EntitySpec, row: Dict[str, Any]) -> str:
    return ",".join(f"{col}={row.get(col)}" for col in spec.key_columns)


def upsert_rows(
    session: Session,
    spec: EntitySpec,
    rows: Iterable[Dict[str, Any]],
    *,
    now: Optional[datetime] = None,
) -> UpsertResult:
    result = UpsertResult()
    table = spec.model.__table__
    insert = _insert_for(session)
    now = now or utcnow()

    for row in rows:
        problem = _missing_key(spec, row)
        if problem:
            result.failed += 1
            result.errors.append(problem)
            continue

        values = dict(row)
        values["id"] = str(uuid4())
        values["created_at"] = now
        values["updated_at"] = now

        stmt = insert(table).values(**values)
        update_set: Dict[str, Any] = {}
        for col in row:
            if col in spec.key_columns:
                continue
            if col in spec.coalesce_columns:
                update_set[col] = func.coalesce(stmt.excluded[col], table.c[col])
            else:
                update_set[col] = stmt.excluded[col]
        changed = or_(*[table.c[col].is_distinct_from(expr) for col, expr in update_set.items()])
        update_set["updated_at"] = stmt.excluded.updated_at
        stmt = stmt.on_conflict_do_update(
            index_elements=list(spec.key_columns),
            set_=update_set,
            where=changed,
        )

        try:
            existed = session.execute(select(table.c.id).where(_key_clause(table, spec, row))).first() is not None
            res = session.execute(stmt)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            result.failed += 1
            message = f"{spec.name} [{_describe(spec, row)}]: {exc.__class__.__name__}: {str(exc).splitlines()[0]}"
            result.errors.append(message)
            logger.error("[upsert] %s", message)
            continue

        if not existed:
            result.created += 1
        elif res.rowcount:
            result.updated += 1
        else:
            result.unchanged += 1

    return result


def insert_new_rows(
    session: Session,
    spec: EntitySpec,
    rows: Iterable[Dict[str, Any]],
    *,
    now: Optional[datetime] = None,
) -> UpsertResult:
    """Append-only insert: existing natural keys are left untouched."""
    result = UpsertResult()
    table = spec.model.__table__
    insert = _insert_for(session)
    now = now or utcnow()

    for row in rows:
        problem = _missing_key(spec, row)
        if problem:
            result.failed += 1
            result.errors.append(problem)
            continue

        values = dict(row)
        values["id"] = str(uuid4())
        values["created_at"] = now
        stmt = insert(table).values(**values).on_conflict_do_nothing(index_elements=list(spec.key_columns))
        try:
            res = session.execute(stmt)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            result.failed += 1
            message = f"{spec.name} [{_describe(spec, row)}]: {exc.__class__.__name__}: {str(exc).splitlines()[0]}"
            result.errors.append(message)
            logger.error("[upsert] %s", message)
            continue

        if res.rowcount:
            result.created += 1
        else:
            result.unchanged += 1

    return result


def fetch_id_map(
    session: Session,
    model: Type[Any],
    key_column: str,
    keys: Sequence[str],
    *,
    client_id: Optional[str] = None,
) -> Dict[str, str]:
    """Map natural keys to local row ids, in chunks."""
    column = getattr(model, key_column)
    id_map: Dict[str, str] = {}
    unique_keys = list(dict.fromkeys(k for k in keys if k is not None))
    for i in range(0, len(unique_keys), ID_LOOKUP_CHUNK):
        chunk = unique_keys[i : i + ID_LOOKUP_CHUNK]
        stmt = select(model.id, column).where(column.in_(chunk))
        if client_id is not None:
            stmt = stmt.where(model.client_id == client_id)
        for row_id, key in session.execute(stmt):
            id_map[str(key)] = row_id
    return id_map
