"""Match selection over scored invoice candidates.

Ordering is total and independent of input order: score descending, then
earliest due date, then lowest invoice id.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from core.models.receivables import ConfidenceLevel, Invoice, Payment
from reconciliation.scoring import ScoreBreakdown, confidence_level, score_breakdown


# best_match needs strictly more than this
ACCEPTANCE_FLOOR = 40


@dataclass(frozen=True)
class MatchCandidate:
    """An invoice scored against a payment."""
    invoice: Invoice
    score: int
    confidence: ConfidenceLevel
    breakdown: Optional[ScoreBreakdown] = None

    def to_dict(self) -> dict:
        return {
            "invoice_id": self.invoice.id,
            "invoice_number": self.invoice.invoice_number,
            "customer_name": self.invoice.customer_name,
            "amount": str(self.invoice.gross_amount),
            "due_date": self.invoice.due_date.isoformat(),
            "status": self.invoice.status.value,
            "score": self.score,
            "confidence": self.confidence.value,
            "breakdown": self.breakdown.to_dict() if self.breakdown else None,
        }


def _rank_key(candidate: MatchCandidate):
    return (-candidate.score, candidate.invoice.due_date, candidate.invoice.id)


def rank_candidates(payment: Payment, invoices: Iterable[Invoice]) -> List[MatchCandidate]:
    """Score every invoice and return them in selection order."""
    candidates = []
    for invoice in invoices:
        breakdown = score_breakdown(payment, invoice)
        candidates.append(MatchCandidate(
            invoice=invoice,
            score=breakdown.total,
            confidence=confidence_level(breakdown.total),
            breakdown=breakdown,
        ))
    candidates.sort(key=_rank_key)
    return candidates


def best_match(payment: Payment, invoices: Iterable[Invoice]) -> Optional[MatchCandidate]:
    """Highest-ranked invoice, or None unless its score exceeds the floor."""
    ranked = rank_candidates(payment, invoices)
    if ranked and ranked[0].score > ACCEPTANCE_FLOOR:
        return ranked[0]
    return None


def possible_matches(
    payment: Payment,
    invoices: Iterable[Invoice],
    min_score: int = ACCEPTANCE_FLOOR,
) -> List[MatchCandidate]:
    """All invoices scoring at least `min_score`, best first."""
    return [c for c in rank_candidates(payment, invoices) if c.score >= min_score]
