"""Invoice queries and local invoice actions.

Reads resolve open/overdue against today's date so callers never see a
status that went stale since the last sync.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Union

from core.errors import InvalidActionError, NotFoundError
from core.models.receivables import (
    AUTHORITATIVE_STATUSES,
    Invoice,
    LifecycleStatus,
    ReceivablesSummary,
)
from core.observability.logging import get_logger
from reconciliation.status import days_overdue, days_until_due, resolve
from storage.db import ReceivablesStore


logger = get_logger(__name__)


class ReceivablesService:
    """Read side and local actions over stored invoices."""

    def __init__(
        self,
        store: ReceivablesStore,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.today = today
        self.now = now

    def _resolved(self, invoice: Invoice) -> Invoice:
        status = resolve(invoice.status, invoice.due_date, self.today())
        if status == invoice.status:
            return invoice
        return invoice.model_copy(update={"status": status})

    def list_invoices(self, status: Optional[Union[LifecycleStatus, str]] = None) -> List[Invoice]:
        """Invoices ordered by due date, optionally filtered by resolved status."""
        wanted = LifecycleStatus(status) if status is not None else None
        invoices = [self._resolved(inv) for inv in self.store.list_invoices()]
        if wanted is not None:
            invoices = [inv for inv in invoices if inv.status == wanted]
        return invoices

    def get_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.store.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)
        return self._resolved(invoice)

    def invoice_details(self, invoice_id: str) -> Dict[str, Any]:
        """Invoice as JSON-ready dict with due-date helpers."""
        invoice = self.get_invoice(invoice_id)
        today = self.today()
        data = invoice.model_dump(mode="json")
        data["days_until_due"] = days_until_due(invoice.due_date, today)
        data["days_overdue"] = days_overdue(invoice.due_date, today)
        return data

    def summary(self) -> ReceivablesSummary:
        """Counts per status and open/overdue/paid totals."""
        counts = {status: 0 for status in LifecycleStatus}
        totals = {status: Decimal("0") for status in LifecycleStatus}

        invoices = self.list_invoices()
        for invoice in invoices:
            counts[invoice.status] += 1
            totals[invoice.status] += invoice.gross_amount

        return ReceivablesSummary(
            total_invoices=len(invoices),
            open_invoices=counts[LifecycleStatus.OPEN],
            overdue_invoices=counts[LifecycleStatus.OVERDUE],
            paid_invoices=counts[LifecycleStatus.PAID],
            cancelled_invoices=counts[LifecycleStatus.CANCELLED],
            total_open_amount=totals[LifecycleStatus.OPEN],
            total_overdue_amount=totals[LifecycleStatus.OVERDUE],
            total_paid_amount=totals[LifecycleStatus.PAID],
        )

    # =========================================================================
    # Local actions
    # =========================================================================

    def mark_paid(self, invoice_id: str, payment_date: Optional[date] = None) -> Invoice:
        """Mark an invoice paid (payment date defaults to today).

        Raises:
            NotFoundError: unknown invoice
            InvalidActionError: invoice is cancelled
        """
        with self.store.transaction() as conn:
            invoice = self.store.get_invoice(invoice_id, conn=conn)
            if invoice is None:
                raise NotFoundError("Invoice", invoice_id)
            if invoice.status == LifecycleStatus.CANCELLED:
                raise InvalidActionError(f"Invoice {invoice.invoice_number} is cancelled")

            self.store.update_invoice_status(
                invoice_id,
                LifecycleStatus.PAID,
                self.now(),
                payment_date=payment_date or self.today(),
                conn=conn,
            )

        logger.info(f"Invoice {invoice.invoice_number} marked paid")
        return self.get_invoice(invoice_id)

    def send_reminder(self, invoice_id: str) -> Invoice:
        """Record a payment reminder (reminder_level + 1).

        Delivery of the reminder itself happens elsewhere.

        Raises:
            NotFoundError: unknown invoice
            InvalidActionError: invoice is paid or cancelled
        """
        with self.store.transaction() as conn:
            invoice = self.store.get_invoice(invoice_id, conn=conn)
            if invoice is None:
                raise NotFoundError("Invoice", invoice_id)
            if invoice.status in AUTHORITATIVE_STATUSES:
                raise InvalidActionError(
                    f"Invoice {invoice.invoice_number} is {invoice.status.value}, no reminder sent"
                )
            self.store.record_reminder(invoice_id, self.now(), conn=conn)

        updated = self.get_invoice(invoice_id)
        logger.info(
            f"Reminder recorded for invoice {invoice.invoice_number}",
            extra_fields={"reminder_level": updated.reminder_level},
        )
        return updated
