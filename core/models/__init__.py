"""Core data models for receivables sync and payment reconciliation."""

from core.models.receivables import (
    # Enums
    LifecycleStatus,
    MatchStatus,
    ConfidenceLevel,
    AUTHORITATIVE_STATUSES,

    # Inbound records
    InvoiceRecord,
    PaymentRecord,

    # Stored entities
    Invoice,
    Payment,
    PaymentMatch,
    ReceivablesSummary,

    # Value types
    DecimalValue,
    DateValue,
)

__all__ = [
    "LifecycleStatus",
    "MatchStatus",
    "ConfidenceLevel",
    "AUTHORITATIVE_STATUSES",
    "InvoiceRecord",
    "PaymentRecord",
    "Invoice",
    "Payment",
    "PaymentMatch",
    "ReceivablesSummary",
    "DecimalValue",
    "DateValue",
]
