from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from shipmirror.services.provider.client import ProviderClient
from shipmirror.services.provider.paging import FetchOutcome, PagedFetcher

from .results import STATUS_ERROR, STATUS_OK, STATUS_PARTIAL, StageResult, TenantSummary
from .upserter import UpsertResult
from .window import SyncWindow


@dataclass
class SyncContext:
    """Everything one client's pass needs, passed explicitly through the stages.

    Holds the credential-bound API client (and with it the throttle state),
    the DB session, and the accumulators that become the client's summary.
    Nothing here is shared between clients.
    """

    client_id: str
    client_name: Optional[str]
    merchant_id: Optional[str]
    session: Session
    api: ProviderClient
    fetcher: PagedFetcher
    now: datetime
    window: Optional[SyncWindow] = None
    counts: Counter = field(default_factory=Counter)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    reconciliation: Optional[str] = None
    halted: bool = False

    def apply(self, stage: StageResult) -> StageResult:
        self.counts.update(stage.counts)
        self.errors.extend(f"{stage.name}: {msg}" for msg in stage.errors)
        self.warnings.extend(f"{stage.name}: {msg}" for msg in stage.warnings)
        if stage.halt:
            self.halted = True
        return stage

    def summary(self) -> TenantSummary:
        if self.halted:
            status = STATUS_ERROR
        elif self.errors:
            status = STATUS_PARTIAL
        else:
            status = STATUS_OK
        return TenantSummary(
            client_id=self.client_id,
            client_name=self.client_name,
            status=status,
            counts=Counter(self.counts),
            errors=list(self.errors),
            warnings=list(self.warnings),
            window=self.window.to_dict() if self.window else None,
            reconciliation=self.reconciliation,
        )


def upsert_stage(name: str, entity: str, result: UpsertResult, *, extra_errors: Optional[List[str]] = None) -> StageResult:
    counts = {
        f"{entity}_created": result.created,
        f"{entity}_updated": result.updated,
        f"{entity}_unchanged": result.unchanged,
    }
    if result.failed:
        counts[f"{entity}_failed"] = result.failed
    return StageResult(name=name, counts=counts, errors=list(extra_errors or []) + list(result.errors))


def fetch_stage(name: str, entity: str, outcome: FetchOutcome) -> StageResult:
    """Turn a paging outcome into a stage result.

    Rate limits and page caps are warnings; auth failures halt the client;
    other interruptions are errors.
    """
    stage = StageResult(name=name, counts={f"{entity}_fetched": len(outcome.items)})
    if outcome.complete:
        return stage
    message = outcome.message or outcome.stop_reason
    if outcome.is_warning:
        stage.warnings.append(f"{outcome.stop_reason}: {message}")
    else:
        stage.errors.append(f"{outcome.stop_reason}: {message}")
    if outcome.is_auth_failure:
        stage.halt = True
    return stage
