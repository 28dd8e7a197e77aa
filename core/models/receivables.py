"""Receivables domain models.

Validated inbound records (what connectors hand to the engine) and the
persisted entities (what the store returns):

- InvoiceRecord / PaymentRecord: parsed raw source records
- Invoice, Payment, PaymentMatch: stored entities
- ReceivablesSummary: aggregate counts and totals
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Enums
# =============================================================================

class LifecycleStatus(str, Enum):
    """Invoice lifecycle status."""
    OPEN = "open"
    OVERDUE = "overdue"
    PAID = "paid"
    CANCELLED = "cancelled"


# Set by explicit action only, never recomputed from dates
AUTHORITATIVE_STATUSES = frozenset({LifecycleStatus.PAID, LifecycleStatus.CANCELLED})


class MatchStatus(str, Enum):
    """Review status of a payment match."""
    PENDING = "pending"
    MATCHED = "matched"
    IGNORED = "ignored"


class ConfidenceLevel(str, Enum):
    """Triage band for a confidence score."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# =============================================================================
# Value Parsers (source APIs send strings, floats and timestamps)
# =============================================================================

def parse_decimal(value):
    """Parse a money amount. Empty values become None, garbage raises."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not an amount")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        try:
            return Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse amount: {value!r}")
    return value


def parse_date(value):
    """Parse a calendar date; timestamps are reduced to their date part."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        # "2024-11-15T00:00:00+01:00" -> "2024-11-15"
        if len(s) > 10 and s[10] in ("T", " "):
            s = s[:10]
        try:
            return date.fromisoformat(s)
        except ValueError:
            raise ValueError(f"Cannot parse date: {value!r}")
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(parse_decimal)]
DateValue = Annotated[date, BeforeValidator(parse_date)]


class ReceivablesBase(BaseModel):
    """Base model for all receivables types."""
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# Inbound records (validated at the connector boundary)
# =============================================================================

class InvoiceRecord(ReceivablesBase):
    """An invoice as reported by an external source, after validation.

    Only paid/cancelled may be carried as `reported_status`; open and
    overdue are always derived locally.
    """
    source: str = Field(..., min_length=1)
    source_native_id: str = Field(..., min_length=1)
    invoice_number: str = Field(..., min_length=1)
    customer_id: Optional[str] = None
    customer_name: str = Field(..., min_length=1)
    gross_amount: DecimalValue = Field(..., gt=0)
    net_amount: Optional[DecimalValue] = None
    tax_amount: Optional[DecimalValue] = None
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    issue_date: Optional[DateValue] = None
    due_date: DateValue
    reported_status: Optional[LifecycleStatus] = None
    payment_date: Optional[DateValue] = None

    @field_validator("reported_status")
    @classmethod
    def _only_authoritative(cls, value):
        if value is not None and value not in AUTHORITATIVE_STATUSES:
            raise ValueError("Sources may only report paid or cancelled")
        return value

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class PaymentRecord(ReceivablesBase):
    """A payment as reported by an external source, after validation."""
    source: str = Field(..., min_length=1)
    source_payment_id: str = Field(..., min_length=1)
    amount: DecimalValue
    payment_date: DateValue
    reference: Optional[str] = None
    account: Optional[str] = None
    invoice_ref: Optional[str] = None


# =============================================================================
# Stored entities
# =============================================================================

class Invoice(ReceivablesBase):
    """A persisted invoice."""
    id: str
    source: str
    source_id: str
    invoice_number: str
    customer_id: Optional[str] = None
    customer_name: str
    gross_amount: DecimalValue
    net_amount: Optional[DecimalValue] = None
    tax_amount: Optional[DecimalValue] = None
    currency: str = "EUR"
    issue_date: Optional[DateValue] = None
    due_date: DateValue
    status: LifecycleStatus
    reminder_level: int = Field(default=0, ge=0)
    last_reminder_sent: Optional[datetime] = None
    payment_date: Optional[DateValue] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def amount(self) -> Decimal:
        """Amount used for matching and totals (gross)."""
        return self.gross_amount


class Payment(ReceivablesBase):
    """A persisted incoming payment."""
    id: str
    source: str
    source_payment_id: str
    amount: DecimalValue
    payment_date: DateValue
    reference: Optional[str] = None
    account: Optional[str] = None
    invoice_ref: Optional[str] = None
    matched_invoice_id: Optional[str] = None
    created_at: Optional[datetime] = None


class PaymentMatch(ReceivablesBase):
    """Reconciliation record linking one payment to an invoice."""
    id: str
    payment_id: str
    suggested_invoice_id: Optional[str] = None
    confidence_score: Optional[int] = Field(default=None, ge=0, le=100)
    status: MatchStatus = MatchStatus.PENDING
    matched_invoice_id: Optional[str] = None
    matched_by: Optional[str] = None
    matched_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReceivablesSummary(ReceivablesBase):
    """Aggregate counts and monetary totals over all invoices."""
    total_invoices: int = 0
    open_invoices: int = 0
    overdue_invoices: int = 0
    paid_invoices: int = 0
    cancelled_invoices: int = 0
    total_open_amount: Decimal = Decimal("0")
    total_overdue_amount: Decimal = Decimal("0")
    total_paid_amount: Decimal = Decimal("0")
