from fastapi.testclient import TestClient

from shipmirror.config import settings
from shipmirror.main import app
from shipmirror.routers import sync_cron
from shipmirror.services.sync.results import RunResult


def _recorder(calls, sync_type="stub"):
    async def fake(**kwargs):
        calls.append(kwargs)
        result = RunResult(sync_type=sync_type)
        result.counts["orders_created"] = 3
        return result.finish()

    return fake


def test_sync_endpoint_runs_incremental(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(sync_cron, "sync_all", _recorder(calls, "incremental"))
    client = TestClient(app)

    resp = client.get("/cron/sync", params={"minutes_back": 7})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["sync_type"] == "incremental"
    assert body["counts"] == {"orders_created": 3}
    assert calls == [{"minutes_back": 7}]
    assert "X-Request-ID" in resp.headers


def test_reconcile_endpoint_defaults_days_back(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(sync_cron, "sync_all", _recorder(calls))
    monkeypatch.setattr(settings, "RECONCILE_DAYS_BACK", 20)

    resp = TestClient(app).post("/cron/sync-reconcile")

    assert resp.status_code == 200
    assert calls == [{"days_back": 20}]


def test_each_cadence_has_an_endpoint(monkeypatch) -> None:
    calls = {}
    for name in (
        "sync_all_transactions",
        "sync_returns",
        "sync_receiving_orders",
        "sync_all_undelivered_timelines",
        "backfill_missing_items",
    ):
        calls[name] = []
        monkeypatch.setattr(sync_cron, name, _recorder(calls[name]))
    client = TestClient(app)

    assert client.get("/cron/sync-transactions", params={"days_back": 2}).status_code == 200
    assert client.get("/cron/sync-returns").status_code == 200
    assert client.get("/cron/sync-receiving", params={"days_back": 30}).status_code == 200
    assert client.get("/cron/sync-timelines", params={"max_shipments": 50}).status_code == 200
    assert client.get("/cron/sync-backfill-items").status_code == 200

    assert calls["sync_all_transactions"] == [{"start": None, "end": None, "days_back": 2}]
    assert calls["sync_returns"] == [{"max_per_client": None}]
    assert calls["sync_receiving_orders"] == [{"days_back": 30}]
    assert calls["sync_all_undelivered_timelines"] == [{"max_shipments": 50, "max_age_days": None}]
    assert calls["backfill_missing_items"] == [{"days_back": None, "max_parents": None}]


def test_invalid_range_is_a_bad_request(monkeypatch) -> None:
    async def reject(**kwargs):
        raise ValueError("window end must be after start")

    monkeypatch.setattr(sync_cron, "sync_all_transactions", reject)

    resp = TestClient(app).get(
        "/cron/sync-transactions",
        params={"start": "2026-01-02T00:00:00Z", "end": "2026-01-01T00:00:00Z"},
    )

    assert resp.status_code == 400
    assert "after start" in resp.json()["detail"]


def test_non_positive_parameters_are_rejected() -> None:
    resp = TestClient(app).get("/cron/sync", params={"minutes_back": 0})
    assert resp.status_code == 422


def test_cron_secret_is_enforced(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(sync_cron, "sync_all", _recorder(calls))
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    client = TestClient(app)

    assert client.get("/cron/sync").status_code == 401
    assert client.get("/cron/sync", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.get("/cron/sync", headers={"Authorization": "Bearer s3cret"}).status_code == 200
    assert len(calls) == 1


def test_failed_run_is_returned_as_structured_result(monkeypatch) -> None:
    async def broken(**kwargs):
        return RunResult.failed("incremental", "RuntimeError: boom")

    monkeypatch.setattr(sync_cron, "sync_all", broken)

    body = TestClient(app).get("/cron/sync").json()

    assert body["success"] is False
    assert body["tenants"] == []
    assert body["errors"] == ["RuntimeError: boom"]


def test_health() -> None:
    assert TestClient(app).get("/health").json() == {"status": "ok"}
