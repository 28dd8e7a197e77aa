"""Payment-to-invoice match scoring.

Three signals, summed and capped at 100:

| Signal    | Rule                                                   | Points |
|-----------|--------------------------------------------------------|--------|
| Amount    | |payment - invoice gross| < 0.01                       | 50     |
| Date      | |payment date - due date| <= 7 / 14 / 30 days           | 30/20/10 |
| Reference | full invoice number in reference (case-insensitive)    | 20     |
|           | else digits of invoice number (>= 4) in reference      | 15     |
"""

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from core.models.receivables import ConfidenceLevel, Invoice, Payment


# =============================================================================
# Weights
# =============================================================================

AMOUNT_EPSILON = Decimal("0.01")
AMOUNT_POINTS = 50

# (max days apart, points), checked in order
DATE_BANDS = (
    (7, 30),
    (14, 20),
    (30, 10),
)

REFERENCE_FULL_POINTS = 20
REFERENCE_DIGITS_POINTS = 15
REFERENCE_MIN_DIGITS = 4

MAX_SCORE = 100

HIGH_CONFIDENCE = 95
MEDIUM_CONFIDENCE = 70

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class ScoreBreakdown:
    """Points contributed by each signal."""
    amount: int = 0
    date: int = 0
    reference: int = 0

    @property
    def total(self) -> int:
        return min(self.amount + self.date + self.reference, MAX_SCORE)

    def to_dict(self) -> dict:
        return {
            "amount": self.amount,
            "date": self.date,
            "reference": self.reference,
            "total": self.total,
        }


# =============================================================================
# Signals
# =============================================================================

def amount_points(payment_amount: Decimal, invoice_amount: Decimal) -> int:
    if abs(Decimal(payment_amount) - Decimal(invoice_amount)) < AMOUNT_EPSILON:
        return AMOUNT_POINTS
    return 0


def date_points(payment_date: date, due_date: date) -> int:
    days_apart = abs((payment_date - due_date).days)
    for max_days, points in DATE_BANDS:
        if days_apart <= max_days:
            return points
    return 0


def reference_points(reference: Optional[str], invoice_number: str) -> int:
    """Score how well a free-text payment reference names the invoice.

    The digit fallback compares the invoice number with every non-digit
    removed ("RE-2024-0012" -> "20240012") against the raw reference.
    """
    if not reference or not invoice_number:
        return 0

    if invoice_number.lower() in reference.lower():
        return REFERENCE_FULL_POINTS

    digits = _NON_DIGITS.sub("", invoice_number)
    if len(digits) >= REFERENCE_MIN_DIGITS and digits in reference:
        return REFERENCE_DIGITS_POINTS
    return 0


# =============================================================================
# Public API
# =============================================================================

def score_breakdown(payment: Payment, invoice: Invoice) -> ScoreBreakdown:
    """Per-signal points for a payment/invoice pair."""
    return ScoreBreakdown(
        amount=amount_points(payment.amount, invoice.gross_amount),
        date=date_points(payment.payment_date, invoice.due_date),
        reference=reference_points(payment.reference, invoice.invoice_number),
    )


def score(payment: Payment, invoice: Invoice) -> int:
    """Confidence score in [0, 100] that `payment` settles `invoice`."""
    return score_breakdown(payment, invoice).total


def confidence_level(value: int) -> ConfidenceLevel:
    """Map a score to its triage band."""
    if value >= HIGH_CONFIDENCE:
        return ConfidenceLevel.HIGH
    if value >= MEDIUM_CONFIDENCE:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW
