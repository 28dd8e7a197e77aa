"""Reconciliation - invoice sync, status resolution and payment matching."""

from reconciliation.status import resolve, days_until_due, days_overdue
from reconciliation.scoring import score, score_breakdown, confidence_level, ScoreBreakdown
from reconciliation.selector import MatchCandidate, best_match, possible_matches, ACCEPTANCE_FLOOR
from reconciliation.upsert import InvoiceUpsertEngine, UpsertResult
from reconciliation.results import CycleStatus, SourceSyncResult, SyncCycleResult
from reconciliation.review import PaymentMatchReviewer
from reconciliation.receivables import ReceivablesService
from reconciliation.engine import ReconciliationOrchestrator

__all__ = [
    "resolve",
    "days_until_due",
    "days_overdue",
    "score",
    "score_breakdown",
    "confidence_level",
    "ScoreBreakdown",
    "MatchCandidate",
    "best_match",
    "possible_matches",
    "ACCEPTANCE_FLOOR",
    "InvoiceUpsertEngine",
    "UpsertResult",
    "CycleStatus",
    "SourceSyncResult",
    "SyncCycleResult",
    "PaymentMatchReviewer",
    "ReceivablesService",
    "ReconciliationOrchestrator",
]
