from datetime import timedelta

import pytest

from shipmirror.services.sync.window import (
    MODE_EXPLICIT,
    MODE_INCREMENTAL,
    MODE_RECONCILIATION,
    plan_explicit_window,
    plan_incremental_window,
    plan_reconciliation_window,
)

from conftest import utc


def test_incremental_window_without_cursor():
    window = plan_incremental_window(minutes_back=5, overlap_minutes=5, now=utc(2026, 1, 1, 12, 5))

    assert window.start == utc(2026, 1, 1, 11, 55)
    assert window.end == utc(2026, 1, 1, 12, 5)
    assert window.mode == MODE_INCREMENTAL
    assert not window.runs_reconciliation


def test_consecutive_runs_overlap():
    first = plan_incremental_window(minutes_back=5, overlap_minutes=5, now=utc(2026, 1, 1, 12, 5))
    second = plan_incremental_window(
        minutes_back=5, overlap_minutes=5, now=utc(2026, 1, 1, 12, 6), cursor=first.end
    )

    assert second.start <= first.end - timedelta(minutes=5)
    assert second.start == utc(2026, 1, 1, 11, 56)
    # A record created between the two runs is inside the later window.
    assert second.contains(utc(2026, 1, 1, 12, 2))


def test_lagging_cursor_extends_window_back():
    window = plan_incremental_window(
        minutes_back=5, overlap_minutes=5, now=utc(2026, 1, 1, 12, 0), cursor=utc(2026, 1, 1, 10, 0)
    )

    assert window.start == utc(2026, 1, 1, 9, 55)
    assert window.end == utc(2026, 1, 1, 12, 0)


def test_long_outage_caps_window_end_not_start():
    window = plan_incremental_window(
        minutes_back=5,
        overlap_minutes=5,
        now=utc(2026, 1, 5, 0, 0),
        cursor=utc(2026, 1, 1, 0, 0),
        max_window_hours=24,
    )

    assert window.start == utc(2025, 12, 31, 23, 55)
    assert window.end == utc(2026, 1, 1, 23, 55)


def test_naive_datetimes_are_treated_as_utc():
    from datetime import datetime

    window = plan_incremental_window(
        minutes_back=5, overlap_minutes=0, now=utc(2026, 1, 1, 12, 0), cursor=datetime(2026, 1, 1, 11, 0)
    )
    assert window.start == utc(2026, 1, 1, 11, 0)


def test_reconciliation_window():
    window = plan_reconciliation_window(days_back=20, now=utc(2026, 1, 21))

    assert window.start == utc(2026, 1, 1)
    assert window.end == utc(2026, 1, 21)
    assert window.mode == MODE_RECONCILIATION
    assert window.runs_reconciliation


def test_window_is_half_open():
    window = plan_explicit_window(utc(2026, 1, 1), utc(2026, 1, 2))

    assert window.mode == MODE_EXPLICIT
    assert window.contains(utc(2026, 1, 1))
    assert not window.contains(utc(2026, 1, 2))
    assert not window.contains(None)


def test_explicit_window_rejects_inverted_range():
    with pytest.raises(ValueError):
        plan_explicit_window(utc(2026, 1, 2), utc(2026, 1, 1))
    with pytest.raises(ValueError):
        plan_explicit_window(utc(2026, 1, 1), utc(2026, 1, 1))


def test_to_dict_uses_z_suffix():
    window = plan_explicit_window(utc(2026, 1, 1), utc(2026, 1, 2))
    assert window.to_dict() == {"start": "2026-01-01T00:00:00Z", "end": "2026-01-02T00:00:00Z", "mode": "explicit"}


def test_bounds_are_whole_seconds():
    now = utc(2026, 1, 21, 0, 0, 0, 750000)

    recon = plan_reconciliation_window(days_back=20, now=now)
    incremental = plan_incremental_window(minutes_back=5, overlap_minutes=5, now=now)
    explicit = plan_explicit_window(utc(2026, 1, 1, 0, 0, 0, 10), now)

    assert recon.end == utc(2026, 1, 21)
    assert recon.start == utc(2026, 1, 1)
    assert incremental.end == utc(2026, 1, 21)
    assert incremental.start == utc(2026, 1, 20, 23, 50)
    assert explicit.start == utc(2026, 1, 1)
    # What goes on the wire is what the local diff uses.
    assert recon.to_dict()["end"] == "2026-01-21T00:00:00Z"
