from uuid import uuid4

import pytest
from sqlalchemy import select

from shipmirror.config import settings
from shipmirror.models_sqlalchemy.models import Order, ReceivingOrder, Return, Shipment, Transaction
from shipmirror.services.mirror_queries import list_transactions_for_client, list_unattributed_transactions
from shipmirror.services.sync.transactions import PARENT_SCOPE, sync_all_transactions, transactions_window

from conftest import seed_client, utc


def _seed_shipment(factory, client_id: str, provider_shipment_id: str) -> None:
    db = factory()
    try:
        order = Order(id=str(uuid4()), client_id=client_id, provider_order_id=f"o-{provider_shipment_id}-{client_id}")
        db.add(order)
        db.flush()
        db.add(
            Shipment(
                id=str(uuid4()),
                client_id=client_id,
                order_id=order.id,
                provider_shipment_id=provider_shipment_id,
            )
        )
        db.commit()
    finally:
        db.close()


def _tx(tx_id: str, ref_type: str, ref_id: str, amount: float = 4.25) -> dict:
    return {
        "transaction_id": tx_id,
        "reference_id": ref_id,
        "reference_type": ref_type,
        "transaction_type": "Charge",
        "transaction_fee": "Shipping",
        "amount": amount,
        "charge_date": "2026-01-02T08:00:00Z",
        "invoiced_status": False,
    }


@pytest.fixture
def parent_feed(session_factory, provider, monkeypatch):
    monkeypatch.setattr(settings, "PROVIDER_PARENT_TOKEN", "parent-token")
    seed_client(session_factory, "c1", "Acme", token="tok-a")
    seed_client(session_factory, "c2", "Bolt", token="tok-b")
    _seed_shipment(session_factory, "c1", "501")
    _seed_shipment(session_factory, "c1", "777")
    _seed_shipment(session_factory, "c2", "777")
    db = session_factory()
    try:
        db.add(Return(id=str(uuid4()), client_id="c2", provider_return_id="9001"))
        db.add(ReceivingOrder(id=str(uuid4()), client_id="c1", provider_receiving_id="3001"))
        db.commit()
    finally:
        db.close()

    account = provider.account("parent-token")
    account.transaction_pages = [
        [_tx("T1", "Shipment", "501"), _tx("T2", "Shipment", "999")],
        [_tx("T3", "Shipment", "777"), _tx("T4", "Return", "9001"), _tx("T5", "WRO", "3001")],
    ]
    return account


@pytest.mark.asyncio
async def test_parent_feed_attributes_by_reference(session_factory, provider, parent_feed):
    result = await sync_all_transactions(
        days_back=3, session_factory=session_factory, transport=provider.transport, now=utc(2026, 1, 3)
    )

    assert result.success
    assert [t.client_id for t in result.tenants] == [PARENT_SCOPE]
    assert result.counts["transactions_fetched"] == 5
    assert result.counts["transactions_created"] == 5
    assert result.counts["transactions_unattributed"] == 2

    with session_factory() as db:
        owners = dict(db.execute(select(Transaction.provider_transaction_id, Transaction.client_id)).all())
    assert owners == {"T1": "c1", "T2": None, "T3": None, "T4": "c2", "T5": "c1"}

    request = provider.requests_for("/transactions:query")[0]
    assert request.method == "POST"
    assert request.headers["Authorization"] == "Bearer parent-token"


@pytest.mark.asyncio
async def test_orphans_never_reach_client_queries(session_factory, provider, parent_feed):
    await sync_all_transactions(days_back=3, session_factory=session_factory, transport=provider.transport, now=utc(2026, 1, 3))

    with session_factory() as db:
        acme = [t.provider_transaction_id for t in list_transactions_for_client(db, "c1")]
        bolt = [t.provider_transaction_id for t in list_transactions_for_client(db, "c2")]
        orphans = [t.provider_transaction_id for t in list_unattributed_transactions(db)]
        assert list_transactions_for_client(db, "") == []

    assert sorted(acme) == ["T1", "T5"]
    assert bolt == ["T4"]
    assert sorted(orphans) == ["T2", "T3"]


@pytest.mark.asyncio
async def test_refetch_keeps_existing_attribution(session_factory, provider, parent_feed):
    await sync_all_transactions(days_back=3, session_factory=session_factory, transport=provider.transport, now=utc(2026, 1, 3))
    with session_factory() as db:
        db.query(Shipment).filter(Shipment.provider_shipment_id == "501").delete()
        db.commit()

    result = await sync_all_transactions(
        days_back=3, session_factory=session_factory, transport=provider.transport, now=utc(2026, 1, 3)
    )

    assert result.counts["transactions_created"] == 0
    with session_factory() as db:
        assert db.execute(
            select(Transaction.client_id).where(Transaction.provider_transaction_id == "T1")
        ).scalar_one() == "c1"


@pytest.mark.asyncio
async def test_per_client_feed_without_parent_token(session_factory, provider):
    seed_client(session_factory, "c1", "Acme", token="tok-a")
    seed_client(session_factory, "c2", "Bolt", token="tok-b")
    provider.account("tok-a").transaction_pages = [[_tx("T1", "Shipment", "1")]]
    provider.account("tok-b").transaction_pages = [[_tx("T2", "Shipment", "2")]]

    result = await sync_all_transactions(days_back=3, session_factory=session_factory, transport=provider.transport)

    assert result.success
    assert {t.client_id for t in result.tenants} == {"c1", "c2"}
    with session_factory() as db:
        owners = dict(db.execute(select(Transaction.provider_transaction_id, Transaction.client_id)).all())
    assert owners == {"T1": "c1", "T2": "c2"}


@pytest.mark.asyncio
async def test_feed_failure_is_reported(session_factory, provider, parent_feed):
    parent_feed.transaction_error = 503

    result = await sync_all_transactions(days_back=3, session_factory=session_factory, transport=provider.transport)

    assert result.success
    assert result.tenants[0].errors
    assert result.counts["transactions_created"] == 0


def test_transactions_window_arguments():
    window = transactions_window(start=utc(2026, 1, 1), end=utc(2026, 1, 2))
    assert (window.start, window.end) == (utc(2026, 1, 1), utc(2026, 1, 2))

    window = transactions_window(days_back=3, now=utc(2026, 1, 4))
    assert window.start == utc(2026, 1, 1)

    with pytest.raises(ValueError):
        transactions_window(start=utc(2026, 1, 1))
    with pytest.raises(ValueError):
        transactions_window(days_back=0)
