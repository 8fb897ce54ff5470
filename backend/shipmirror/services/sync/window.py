"""Time windows for each run mode.

``incremental`` windows are narrow and never drive reconciliation;
``reconciliation`` windows are wide enough to be authoritative for
soft-delete decisions; ``explicit`` windows are caller-supplied ranges such
as a transaction re-pull.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from shipmirror.utils.timeutil import as_utc, floor_seconds, isoformat_z, utcnow

MODE_INCREMENTAL = "incremental"
MODE_RECONCILIATION = "reconciliation"
MODE_EXPLICIT = "explicit"


@dataclass(frozen=True)
class SyncWindow:
    """Half-open interval ``[start, end)``.

    The planners floor both bounds to whole seconds, matching the request
    parameters, so the local reconciliation diff covers exactly what the
    listing covered.
    """

    start: datetime
    end: datetime
    mode: str

    @property
    def runs_reconciliation(self) -> bool:
        return self.mode == MODE_RECONCILIATION

    def contains(self, value: Optional[datetime]) -> bool:
        if value is None:
            return False
        value = as_utc(value)
        return self.start <= value < self.end

    def to_dict(self) -> dict:
        return {"start": isoformat_z(self.start), "end": isoformat_z(self.end), "mode": self.mode}


def plan_incremental_window(
    *,
    minutes_back: int,
    overlap_minutes: int,
    now: Optional[datetime] = None,
    cursor: Optional[datetime] = None,
    max_window_hours: int = 24,
) -> SyncWindow:
    """Window for a per-minute run.

    Starts at ``min(now - minutes_back, cursor) - overlap`` so consecutive runs
    always overlap by at least the margin, even when a run was skipped and the
    stored cursor lags behind. After a long outage the window end is capped at
    ``start + max_window_hours`` so the backlog is worked off over several
    runs without leaving a gap.
    """
    now = floor_seconds(now if now is not None else utcnow())
    base = now - timedelta(minutes=minutes_back)
    cursor = as_utc(cursor)
    if cursor is not None and cursor < base:
        base = cursor
    start = floor_seconds(base - timedelta(minutes=overlap_minutes))

    end = now
    if end - start > timedelta(hours=max_window_hours):
        end = start + timedelta(hours=max_window_hours)
    return SyncWindow(start=start, end=end, mode=MODE_INCREMENTAL)


def plan_reconciliation_window(*, days_back: int, now: Optional[datetime] = None) -> SyncWindow:
    now = floor_seconds(now if now is not None else utcnow())
    return SyncWindow(start=now - timedelta(days=days_back), end=now, mode=MODE_RECONCILIATION)


def plan_explicit_window(start: datetime, end: datetime) -> SyncWindow:
    start = floor_seconds(start)
    end = floor_seconds(end)
    if end <= start:
        raise ValueError(f"window end {end.isoformat()} must be after start {start.isoformat()}")
    return SyncWindow(start=start, end=end, mode=MODE_EXPLICIT)
