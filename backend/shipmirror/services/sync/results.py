from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from shipmirror.utils.timeutil import isoformat_z, utcnow

STATUS_OK = "ok"
STATUS_PARTIAL = "partial"
STATUS_ERROR = "error"
STATUS_SKIPPED = "skipped"


@dataclass
class StageResult:
    """Outcome of one pipeline stage for one client.

    ``halt`` stops the remaining stages for that client (credential rejected).
    """

    name: str
    counts: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    halt: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors and not self.halt


@dataclass
class TenantSummary:
    client_id: str
    client_name: Optional[str] = None
    status: str = STATUS_OK
    counts: Counter = field(default_factory=Counter)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    window: Optional[Dict[str, str]] = None
    reconciliation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "client_name": self.client_name,
            "status": self.status,
            "counts": dict(self.counts),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "window": self.window,
            "reconciliation": self.reconciliation,
        }


@dataclass
class RunResult:
    """Structured result of one entry-point invocation.

    ``success`` False with no tenants means the run did not execute at all;
    ``success`` True with per-tenant errors means it ran with partial failures.
    """

    sync_type: str
    success: bool = True
    counts: Counter = field(default_factory=Counter)
    tenants: List[TenantSummary] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    duration_ms: int = 0

    def add_tenant(self, summary: TenantSummary) -> None:
        self.tenants.append(summary)
        self.counts.update(summary.counts)
        label = summary.client_name or summary.client_id
        self.errors.extend(f"[{label}] {msg}" for msg in summary.errors)
        self.warnings.extend(f"[{label}] {msg}" for msg in summary.warnings)

    def finish(self) -> "RunResult":
        self.duration_ms = int((utcnow() - self.started_at).total_seconds() * 1000)
        return self

    @classmethod
    def failed(cls, sync_type: str, message: str, started_at: Optional[datetime] = None) -> "RunResult":
        result = cls(sync_type=sync_type, success=False, errors=[message])
        if started_at is not None:
            result.started_at = started_at
        return result.finish()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "sync_type": self.sync_type,
            "counts": dict(self.counts),
            "tenants": [t.to_dict() for t in self.tenants],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "started_at": isoformat_z(self.started_at),
            "duration_ms": self.duration_ms,
        }
