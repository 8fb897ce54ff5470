import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

# Settings refuse to load without a database URL; tests run on in-memory sqlite.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shipmirror.config import settings
from shipmirror.models_sqlalchemy import Base
from shipmirror.models_sqlalchemy import models, sync_state  # noqa: F401
from shipmirror.models_sqlalchemy.models import Client, ClientApiCredential, FulfillmentCenter
from shipmirror.utils.timeutil import parse_datetime

BASE_URL = "https://provider.test"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _fast_provider(monkeypatch):
    """No request spacing and a fixed base URL for the fake provider."""
    monkeypatch.setattr(settings, "PROVIDER_REQUESTS_PER_MINUTE", 0)
    monkeypatch.setattr(settings, "PROVIDER_API_BASE_URL", BASE_URL)
    monkeypatch.setattr(settings, "PROVIDER_PARENT_TOKEN", None)
    monkeypatch.setattr(settings, "RECONCILE_VERIFY_CANDIDATES", False)
    monkeypatch.setattr(settings, "CRON_SECRET", None)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()


def seed_client(factory, client_id: str, name: str, token: Optional[str] = None, merchant_id: Optional[str] = None) -> None:
    db = factory()
    try:
        db.add(Client(id=client_id, company_name=name, merchant_id=merchant_id, is_active=True))
        if token is not None:
            db.add(
                ClientApiCredential(
                    id=str(uuid4()),
                    client_id=client_id,
                    provider=settings.PROVIDER_NAME,
                    api_token=token,
                )
            )
        db.commit()
    finally:
        db.close()


def seed_fulfillment_center(factory, name: str, country: str, fc_id: Optional[str] = None) -> None:
    db = factory()
    try:
        db.add(FulfillmentCenter(id=str(uuid4()), name=name, country=country, provider_fc_id=fc_id))
        db.commit()
    finally:
        db.close()


def make_product(product_id: int, sku: str, quantity: Optional[int] = None, inventory: Optional[List[dict]] = None) -> dict:
    product: Dict[str, Any] = {"id": product_id, "sku": sku, "name": f"Product {sku}"}
    if quantity is not None:
        product["quantity"] = quantity
    if inventory is not None:
        product["inventory"] = inventory
    return product


def make_shipment(shipment_id: int, created: str, status: str = "Processing", products: Optional[List[dict]] = None, **extra) -> dict:
    shipment = {
        "id": shipment_id,
        "status": status,
        "created_date": created,
        "tracking": {"tracking_number": f"1Z{shipment_id}", "carrier": "UPS"},
        "location": {"id": 10, "name": "Chicago FC"},
        "measurements": {"length_in": 10, "width_in": 8, "depth_in": 4, "total_weight_oz": 20},
        "products": products or [],
    }
    shipment.update(extra)
    return shipment


def make_order(
    order_id: int,
    created: str,
    shipments: Optional[List[dict]] = None,
    products: Optional[List[dict]] = None,
    **extra,
) -> dict:
    order = {
        "id": order_id,
        "order_number": f"#{order_id}",
        "reference_id": f"REF-{order_id}",
        "status": "Processing",
        "type": "DTC",
        "channel": {"id": 77, "name": "Shopify"},
        "recipient": {
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "address": {"address1": "1 Main St", "city": "Chicago", "state": "IL", "country": "US", "zip_code": "60601"},
        },
        "created_date": created,
        "purchase_date": created,
        "financials": {"total_price": 42.5},
        "products": products or [],
        "shipments": shipments or [],
    }
    order.update(extra)
    return order


class FakeAccount:
    """Everything one provider credential can see."""

    def __init__(self) -> None:
        self.orders: List[dict] = []
        self.order_details: Dict[str, dict] = {}
        # status code per order or shipment id for single-resource GETs
        self.detail_errors: Dict[str, int] = {}
        self.order_page_errors: Dict[int, int] = {}
        self.present_shipments: set = set()
        self.transaction_pages: List[List[dict]] = []
        self.transaction_error: Optional[int] = None
        self.receiving: List[dict] = []
        self.returns: Dict[str, dict] = {}
        self.timelines: Dict[str, List[dict]] = {}
        self.timeline_errors: Dict[str, int] = {}
        self.shipping_methods: List[dict] = []
        self.channels: List[dict] = []


class FakeProvider:
    """In-process stand-in for the provider REST API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.accounts: Dict[str, FakeAccount] = {}
        self.requests: List[httpx.Request] = []

    def account(self, token: str) -> FakeAccount:
        return self.accounts.setdefault(token, FakeAccount())

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def requests_for(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        token = request.headers.get("Authorization", "").replace("Bearer ", "")
        acct = self.accounts.get(token)
        if acct is None:
            return httpx.Response(401, json={"message": "invalid token"})

        path = request.url.path
        params = request.url.params

        if path == "/order":
            page = int(params.get("Page", "1"))
            if page in acct.order_page_errors:
                return httpx.Response(acct.order_page_errors[page], json={"message": "nope"})
            start = parse_datetime(params.get("StartDate"))
            end = parse_datetime(params.get("EndDate"))
            matching = [
                o for o in acct.orders
                if (start is None or parse_datetime(o["created_date"]) >= start)
                and (end is None or parse_datetime(o["created_date"]) < end)
            ]
            return self._page(matching, page, int(params.get("Limit", "50")))

        if path == "/receiving":
            return self._page(acct.receiving, int(params.get("Page", "1")), int(params.get("Limit", "50")))

        if path == "/shipping-method":
            return httpx.Response(200, json=acct.shipping_methods)

        if path == "/channel":
            return httpx.Response(200, json={"items": acct.channels})

        if path == "/transactions:query":
            if acct.transaction_error:
                return httpx.Response(acct.transaction_error, json={"message": "nope"})
            index = int(params.get("Cursor", "0"))
            pages = acct.transaction_pages or [[]]
            nxt = str(index + 1) if index + 1 < len(pages) else None
            return httpx.Response(200, json={"items": pages[index], "next": nxt})

        parts = path.strip("/").split("/")
        if parts[0] == "order" and len(parts) == 2:
            if parts[1] in acct.detail_errors:
                return httpx.Response(acct.detail_errors[parts[1]])
            detail = acct.order_details.get(parts[1])
            return httpx.Response(200, json=detail) if detail else httpx.Response(404)
        if parts[0] == "shipment" and len(parts) == 3 and parts[2] == "timeline":
            if parts[1] in acct.timeline_errors:
                return httpx.Response(acct.timeline_errors[parts[1]])
            events = acct.timelines.get(parts[1])
            return httpx.Response(200, json=events) if events is not None else httpx.Response(404)
        if parts[0] == "shipment" and len(parts) == 2:
            if parts[1] in acct.detail_errors:
                return httpx.Response(acct.detail_errors[parts[1]])
            if parts[1] in acct.present_shipments:
                return httpx.Response(200, json={"id": int(parts[1])})
            return httpx.Response(404)
        if parts[0] == "return" and len(parts) == 2:
            ret = acct.returns.get(parts[1])
            return httpx.Response(200, json=ret) if ret else httpx.Response(404)

        return httpx.Response(404)

    @staticmethod
    def _page(items: List[dict], page: int, limit: int) -> httpx.Response:
        total_pages = max(1, -(-len(items) // limit))
        chunk = items[(page - 1) * limit : page * limit]
        return httpx.Response(
            200,
            content=json.dumps(chunk).encode(),
            headers={"content-type": "application/json", "total-pages": str(total_pages)},
        )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()
