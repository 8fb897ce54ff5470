import json

import pytest

from shipmirror.services.sync.results import RunResult
from shipmirror.workers import run_sync


def _stub(calls, success=True):
    async def fake(**kwargs):
        calls.append(kwargs)
        if not success:
            return RunResult.failed("stub", "boom")
        return RunResult(sync_type="stub").finish()

    return fake


def test_incremental_job(monkeypatch, capsys):
    calls = []
    monkeypatch.setattr(run_sync, "sync_all", _stub(calls))

    code = run_sync.main(["incremental", "--minutes-back", "3", "--client", "c1", "--client", "c2"])

    assert code == 0
    assert calls == [{"minutes_back": 3, "client_ids": ["c1", "c2"]}]
    assert json.loads(capsys.readouterr().out)["success"] is True


def test_timelines_job_maps_limit(monkeypatch, capsys):
    calls = []
    monkeypatch.setattr(run_sync, "sync_all_undelivered_timelines", _stub(calls))

    run_sync.main(["timelines", "--limit", "25", "--days-back", "10"])

    assert calls == [{"max_shipments": 25, "max_age_days": 10, "client_ids": None}]


def test_failed_run_exits_non_zero(monkeypatch, capsys):
    monkeypatch.setattr(run_sync, "sync_returns", _stub([], success=False))

    assert run_sync.main(["returns"]) == 1


def test_unknown_job_is_rejected():
    with pytest.raises(SystemExit):
        run_sync.main(["everything"])
