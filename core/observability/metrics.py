"""
Metrics Collection for the Receivables Sync Engine

Collects in-memory metrics for:
- Sync cycles (started, completed, completed with skips, failed)
- Records per source (created, updated, skipped, failed, source failures)
- Payment matching (suggestions created, review actions by status)
- Processing times per stage (average, p95)
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class CycleMetrics:
    """Metrics for sync cycle execution."""
    started: int = 0
    completed: int = 0
    completed_with_skips: int = 0
    failed: int = 0
    in_progress: int = 0
    last_finished_at: Optional[datetime] = None
    last_status: Optional[str] = None


def _source_counters() -> Dict[str, int]:
    return {"created": 0, "updated": 0, "skipped": 0, "failed": 0, "payments": 0, "unavailable": 0}


@dataclass
class RecordMetrics:
    """Per-source record counters."""
    by_source: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(_source_counters))


@dataclass
class MatchMetrics:
    """Payment matching metrics."""
    suggestions_created: int = 0
    suggestions_without_candidate: int = 0
    review_actions: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class TimingMetrics:
    """Processing time samples by stage (last N kept)."""
    max_samples: int = 1000
    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str):
        samples = self.by_stage[stage]
        samples.append(duration_ms)
        if len(samples) > self.max_samples:
            self.by_stage[stage] = samples[-self.max_samples:]

    def get_average(self, stage: str) -> float:
        samples = self.by_stage.get(stage, [])
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str) -> float:
        samples = self.by_stage.get(stage, [])
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_cycle_started()
        metrics.record_source_result("sevdesk", created=2, updated=5)
    """

    _instance: Optional["MetricsCollector"] = None
    _instance_lock = Lock()

    def __init__(self):
        self._lock = Lock()
        self.reset()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def reset(self):
        """Drop all collected metrics."""
        with self._lock:
            self.cycles = CycleMetrics()
            self.records = RecordMetrics()
            self.matches = MatchMetrics()
            self.timings = TimingMetrics()

    # =========================================================================
    # Sync cycles
    # =========================================================================

    def record_cycle_started(self):
        with self._lock:
            self.cycles.started += 1
            self.cycles.in_progress += 1

    def record_cycle_finished(self, status: str, duration_ms: Optional[float] = None):
        """Record the end of a cycle with its final status value."""
        with self._lock:
            self.cycles.in_progress = max(0, self.cycles.in_progress - 1)
            if status == "completed":
                self.cycles.completed += 1
            elif status == "completed_with_skips":
                self.cycles.completed_with_skips += 1
            else:
                self.cycles.failed += 1
            self.cycles.last_status = status
            self.cycles.last_finished_at = datetime.utcnow()
            if duration_ms is not None:
                self.timings.add_sample(duration_ms, "sync_cycle")

    # =========================================================================
    # Records
    # =========================================================================

    def record_source_result(
        self,
        source: str,
        created: int = 0,
        updated: int = 0,
        skipped: int = 0,
        failed: int = 0,
        payments: int = 0,
        unavailable: bool = False,
        duration_ms: Optional[float] = None,
    ):
        with self._lock:
            counters = self.records.by_source[source]
            counters["created"] += created
            counters["updated"] += updated
            counters["skipped"] += skipped
            counters["failed"] += failed
            counters["payments"] += payments
            if unavailable:
                counters["unavailable"] += 1
            if duration_ms is not None:
                self.timings.add_sample(duration_ms, f"source.{source}")

    # =========================================================================
    # Matching
    # =========================================================================

    def record_match_suggested(self, has_candidate: bool):
        with self._lock:
            self.matches.suggestions_created += 1
            if not has_candidate:
                self.matches.suggestions_without_candidate += 1

    def record_review_action(self, new_status: str):
        with self._lock:
            self.matches.review_actions[new_status] += 1

    # =========================================================================
    # Timings
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str) -> Dict[str, float]:
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, [])),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "cycles": {
                    "started": self.cycles.started,
                    "completed": self.cycles.completed,
                    "completed_with_skips": self.cycles.completed_with_skips,
                    "failed": self.cycles.failed,
                    "in_progress": self.cycles.in_progress,
                    "last_status": self.cycles.last_status,
                    "last_finished_at": (
                        self.cycles.last_finished_at.isoformat() if self.cycles.last_finished_at else None
                    ),
                },
                "records": {source: dict(c) for source, c in self.records.by_source.items()},
                "matches": {
                    "suggestions_created": self.matches.suggestions_created,
                    "suggestions_without_candidate": self.matches.suggestions_without_candidate,
                    "review_actions": dict(self.matches.review_actions),
                },
                "timings": {
                    stage: {
                        "average_ms": self.timings.get_average(stage),
                        "p95_ms": self.timings.get_p95(stage),
                    }
                    for stage in self.timings.by_stage.keys()
                },
            }


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()
