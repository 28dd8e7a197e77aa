"""Idempotent invoice ingestion.

One row per (source, source_native_id). Re-ingesting a record refreshes the
fields the source owns and leaves local state (reminders, notes) alone.
"""

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional, TypeVar

from core.errors import PersistenceError
from core.models.receivables import (
    AUTHORITATIVE_STATUSES,
    Invoice,
    InvoiceRecord,
    LifecycleStatus,
)
from core.observability.logging import get_logger
from reconciliation.status import resolve
from storage.db import ReceivablesStore


logger = get_logger(__name__)

# Locked/busy database and I/O hiccups are worth one more attempt
TRANSIENT_ERRORS = (sqlite3.OperationalError,)
MAX_ATTEMPTS = 2

T = TypeVar("T")


def persist_with_retry(write: Callable[[], T], what: str) -> T:
    """Run a store write, retrying once on a transient error.

    Raises:
        PersistenceError: if the write still fails, or fails permanently
    """
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            return write()
        except TRANSIENT_ERRORS as e:
            if attempt < MAX_ATTEMPTS:
                logger.warning(f"Transient store error for {what}, retrying: {e}")
                continue
            raise PersistenceError(f"Write of {what} failed: {e}", transient=True) from e
        except sqlite3.DatabaseError as e:
            raise PersistenceError(f"Write of {what} failed: {e}", transient=False) from e


@dataclass
class UpsertResult:
    """Outcome of a single upsert."""
    invoice_id: str
    created: bool
    status: LifecycleStatus


class InvoiceUpsertEngine:
    """Merges validated source records into the invoice table.

    Example:
        engine = InvoiceUpsertEngine(store)
        result = engine.upsert(record)
        if result.created:
            print(f"New invoice {result.invoice_id}")
    """

    def __init__(
        self,
        store: ReceivablesStore,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.today = today
        self.now = now

    def upsert(self, record: InvoiceRecord) -> UpsertResult:
        """Create or refresh the invoice identified by the record's natural key.

        Raises:
            PersistenceError: if the write fails (after one retry for
                transient errors)
        """
        return persist_with_retry(
            lambda: self._upsert_once(record),
            f"invoice {record.source}/{record.source_native_id}",
        )

    def _status_for(self, record: InvoiceRecord, current: LifecycleStatus) -> LifecycleStatus:
        if record.reported_status is not None:
            return record.reported_status
        return resolve(current, record.due_date, self.today())

    def _upsert_once(self, record: InvoiceRecord) -> UpsertResult:
        now = self.now()

        with self.store.transaction() as conn:
            existing = self.store.get_invoice_by_natural_key(
                record.source, record.source_native_id, conn=conn
            )

            if existing is None:
                status = self._status_for(record, LifecycleStatus.OPEN)
                payment_date = record.payment_date
                if status == LifecycleStatus.PAID and payment_date is None:
                    payment_date = self.today()

                invoice = Invoice(
                    id=str(uuid.uuid4()),
                    source=record.source,
                    source_id=record.source_native_id,
                    invoice_number=record.invoice_number,
                    customer_id=record.customer_id,
                    customer_name=record.customer_name,
                    gross_amount=record.gross_amount,
                    net_amount=record.net_amount,
                    tax_amount=record.tax_amount,
                    currency=record.currency,
                    issue_date=record.issue_date,
                    due_date=record.due_date,
                    status=status,
                    reminder_level=0,
                    payment_date=payment_date,
                    created_at=now,
                    updated_at=now,
                )
                self.store.insert_invoice(invoice, conn=conn)
                logger.debug(f"Created invoice {record.invoice_number} ({status.value})")
                return UpsertResult(invoice_id=invoice.id, created=True, status=status)

            if existing.status in AUTHORITATIVE_STATUSES and record.reported_status is None:
                # Locally settled; the source has not caught up yet
                status = existing.status
            else:
                status = self._status_for(record, existing.status)

            payment_date: Optional[date] = existing.payment_date
            if record.reported_status == LifecycleStatus.PAID:
                payment_date = record.payment_date or existing.payment_date or self.today()

            self.store.update_invoice_from_source(
                existing.id, record, status, payment_date, now, conn=conn
            )
            logger.debug(f"Updated invoice {record.invoice_number} ({status.value})")
            return UpsertResult(invoice_id=existing.id, created=False, status=status)
