"""Result types for sync cycles.

Plain dataclasses with no I/O so Temporal workflows can import them.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class CycleStatus(str, Enum):
    """Outcome of a sync cycle."""
    COMPLETED = "completed"
    COMPLETED_WITH_SKIPS = "completed_with_skips"
    FAILED = "failed"


@dataclass
class SourceSyncResult:
    """Counters for one source within a cycle."""
    source: str
    fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    payments_synced: int = 0
    payments_skipped: int = 0
    payment_fetch_errors: int = 0
    available: bool = True
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def invoices_synced(self) -> int:
        return self.created + self.updated

    @property
    def has_skips(self) -> bool:
        return bool(self.skipped or self.failed or self.payments_skipped or self.payment_fetch_errors)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["invoices_synced"] = self.invoices_synced
        return data


@dataclass
class SyncCycleResult:
    """Summary of one full sync cycle."""
    run_id: str
    status: CycleStatus = CycleStatus.COMPLETED
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    duration_ms: float = 0.0
    invoices_synced: int = 0
    payments_synced: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    statuses_changed: int = 0
    matches_created: int = 0
    sources: List[SourceSyncResult] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)
    already_running: bool = False
    error: Optional[str] = None

    def add_source(self, source_result: SourceSyncResult) -> None:
        """Fold one source's counters into the cycle totals."""
        self.sources.append(source_result)
        self.created += source_result.created
        self.updated += source_result.updated
        self.skipped += source_result.skipped + source_result.payments_skipped
        self.failed += source_result.failed
        self.invoices_synced += source_result.invoices_synced
        self.payments_synced += source_result.payments_synced
        if not source_result.available:
            self.failed_sources.append(source_result.source)

    def classify(self) -> CycleStatus:
        """Derive the final status from the collected counters."""
        if self.error or self.already_running:
            self.status = CycleStatus.FAILED
        elif self.sources and len(self.failed_sources) == len(self.sources):
            self.status = CycleStatus.FAILED
            self.error = "All sources failed: " + ", ".join(self.failed_sources)
        elif self.failed_sources or any(s.has_skips for s in self.sources):
            self.status = CycleStatus.COMPLETED_WITH_SKIPS
        else:
            self.status = CycleStatus.COMPLETED
        return self.status

    @property
    def success(self) -> bool:
        return self.status != CycleStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_ms": self.duration_ms,
            "invoices_synced": self.invoices_synced,
            "payments_synced": self.payments_synced,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "statuses_changed": self.statuses_changed,
            "matches_created": self.matches_created,
            "sources": [s.to_dict() for s in self.sources],
            "failed_sources": list(self.failed_sources),
            "already_running": self.already_running,
            "error": self.error,
        }
