"""Receivables Database Operations.

SQLite persistence for the sync and reconciliation engine:
- Schema initialization
- Invoices keyed by id with a unique natural key (source, source_id)
- Payments keyed by id with a unique (source, source_payment_id)
- Payment matches, one per payment
- Sync leases for per-tenant mutual exclusion

Every method opens its own connection unless a connection from
`transaction()` is passed in, so multi-step operations can run inside a
single `BEGIN IMMEDIATE` write transaction.
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from core.models.receivables import (
    Invoice,
    InvoiceRecord,
    LifecycleStatus,
    MatchStatus,
    Payment,
    PaymentMatch,
    PaymentRecord,
)


DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "receivables.db"

# Sentinel for "leave column unchanged"
_UNSET = object()


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


class ReceivablesStore:
    """SQLite-backed store for invoices, payments and payment matches.

    Example:
        store = ReceivablesStore(Path("receivables.db"))
        store.init_db()

        with store.transaction() as conn:
            existing = store.get_invoice_by_natural_key("sevdesk", "42", conn=conn)
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH, timeout: float = 5.0):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database before failing
        """
        self.db_path = Path(db_path)
        self.timeout = timeout

    # =========================================================================
    # Connections
    # =========================================================================

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction; commits on success, rolls back on error."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def _using(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        own = self._connect()
        try:
            yield own
        finally:
            own.close()

    def init_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._using(None) as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS invoices (
                    id TEXT PRIMARY KEY,
                    source TEXT NOT NULL,
                    source_id TEXT NOT NULL,
                    invoice_number TEXT NOT NULL,
                    customer_id TEXT,
                    customer_name TEXT NOT NULL,
                    gross_amount TEXT NOT NULL,
                    net_amount TEXT,
                    tax_amount TEXT,
                    currency TEXT NOT NULL DEFAULT 'EUR',
                    issue_date TEXT,
                    due_date TEXT NOT NULL,
                    status TEXT NOT NULL
                        CHECK(status IN ('open', 'overdue', 'paid', 'cancelled')),
                    reminder_level INTEGER NOT NULL DEFAULT 0 CHECK(reminder_level >= 0),
                    last_reminder_sent TEXT,
                    payment_date TEXT,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(source, source_id)
                );

                CREATE INDEX IF NOT EXISTS idx_invoices_status ON invoices(status);
                CREATE INDEX IF NOT EXISTS idx_invoices_due_date ON invoices(due_date);

                CREATE TABLE IF NOT EXISTS payments (
                    id TEXT PRIMARY KEY,
                    source TEXT NOT NULL,
                    source_payment_id TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    payment_date TEXT NOT NULL,
                    reference TEXT,
                    account TEXT,
                    invoice_ref TEXT,
                    matched_invoice_id TEXT REFERENCES invoices(id),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(source, source_payment_id)
                );

                CREATE TABLE IF NOT EXISTS payment_matches (
                    id TEXT PRIMARY KEY,
                    payment_id TEXT NOT NULL UNIQUE REFERENCES payments(id),
                    suggested_invoice_id TEXT REFERENCES invoices(id),
                    confidence_score INTEGER CHECK(confidence_score BETWEEN 0 AND 100),
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK(status IN ('pending', 'matched', 'ignored')),
                    matched_invoice_id TEXT REFERENCES invoices(id),
                    matched_by TEXT,
                    matched_at TEXT,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK(status != 'matched' OR matched_invoice_id IS NOT NULL)
                );

                CREATE INDEX IF NOT EXISTS idx_payment_matches_status ON payment_matches(status);

                CREATE TABLE IF NOT EXISTS sync_leases (
                    tenant_id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    acquired_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                );
            """)

    def ping(self) -> None:
        """Raise sqlite3.Error unless the schema is reachable."""
        with self._using(None) as c:
            c.execute("SELECT 1 FROM invoices LIMIT 1").fetchone()

    # =========================================================================
    # Invoices
    # =========================================================================

    def get_invoice(self, invoice_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Invoice]:
        with self._using(conn) as c:
            row = c.execute("SELECT * FROM invoices WHERE id = ?", (invoice_id,)).fetchone()
        return Invoice.model_validate(dict(row)) if row else None

    def get_invoice_by_natural_key(
        self,
        source: str,
        source_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Invoice]:
        """Look up an invoice by (source, source-native id)."""
        with self._using(conn) as c:
            row = c.execute(
                "SELECT * FROM invoices WHERE source = ? AND source_id = ?",
                (source, source_id),
            ).fetchone()
        return Invoice.model_validate(dict(row)) if row else None

    def insert_invoice(self, invoice: Invoice, conn: Optional[sqlite3.Connection] = None) -> None:
        with self._using(conn) as c:
            c.execute("""
                INSERT INTO invoices (
                    id, source, source_id, invoice_number, customer_id, customer_name,
                    gross_amount, net_amount, tax_amount, currency, issue_date, due_date,
                    status, reminder_level, last_reminder_sent, payment_date, notes,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                invoice.id,
                invoice.source,
                invoice.source_id,
                invoice.invoice_number,
                invoice.customer_id,
                invoice.customer_name,
                _money(invoice.gross_amount),
                _money(invoice.net_amount),
                _money(invoice.tax_amount),
                invoice.currency,
                _iso(invoice.issue_date),
                _iso(invoice.due_date),
                invoice.status.value,
                invoice.reminder_level,
                _iso(invoice.last_reminder_sent),
                _iso(invoice.payment_date),
                invoice.notes,
                _iso(invoice.created_at),
                _iso(invoice.updated_at),
            ))

    def update_invoice_from_source(
        self,
        invoice_id: str,
        record: InvoiceRecord,
        status: LifecycleStatus,
        payment_date: Optional[date],
        updated_at: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Overwrite source-of-truth fields; local-only fields stay untouched."""
        with self._using(conn) as c:
            c.execute("""
                UPDATE invoices SET
                    invoice_number = ?,
                    customer_id = ?,
                    customer_name = ?,
                    gross_amount = ?,
                    net_amount = ?,
                    tax_amount = ?,
                    currency = ?,
                    issue_date = ?,
                    due_date = ?,
                    status = ?,
                    payment_date = ?,
                    updated_at = ?
                WHERE id = ?
            """, (
                record.invoice_number,
                record.customer_id,
                record.customer_name,
                _money(record.gross_amount),
                _money(record.net_amount),
                _money(record.tax_amount),
                record.currency,
                _iso(record.issue_date),
                _iso(record.due_date),
                status.value,
                _iso(payment_date),
                _iso(updated_at),
                invoice_id,
            ))

    def list_invoices(
        self,
        status: Optional[LifecycleStatus] = None,
        exclude_status: Optional[LifecycleStatus] = None,
        statuses: Optional[List[LifecycleStatus]] = None,
        source: Optional[str] = None,
    ) -> List[Invoice]:
        """List invoices ordered by due date (then id)."""
        query = "SELECT * FROM invoices WHERE 1 = 1"
        params: list = []
        if status is not None:
            query += " AND status = ?"
            params.append(LifecycleStatus(status).value)
        if exclude_status is not None:
            query += " AND status != ?"
            params.append(LifecycleStatus(exclude_status).value)
        if statuses:
            query += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(LifecycleStatus(s).value for s in statuses)
        if source is not None:
            query += " AND source = ?"
            params.append(source)
        query += " ORDER BY due_date ASC, id ASC"

        with self._using(None) as c:
            rows = c.execute(query, params).fetchall()
        return [Invoice.model_validate(dict(row)) for row in rows]

    def update_invoice_status(
        self,
        invoice_id: str,
        status: LifecycleStatus,
        updated_at: datetime,
        payment_date=_UNSET,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """Set an invoice's status (and optionally payment_date).

        Returns:
            True if a row was updated
        """
        with self._using(conn) as c:
            if payment_date is _UNSET:
                cursor = c.execute(
                    "UPDATE invoices SET status = ?, updated_at = ? WHERE id = ?",
                    (LifecycleStatus(status).value, _iso(updated_at), invoice_id),
                )
            else:
                cursor = c.execute(
                    "UPDATE invoices SET status = ?, payment_date = ?, updated_at = ? WHERE id = ?",
                    (LifecycleStatus(status).value, _iso(payment_date), _iso(updated_at), invoice_id),
                )
            return cursor.rowcount > 0

    def refresh_invoice_status(
        self,
        invoice_id: str,
        status: LifecycleStatus,
        updated_at: datetime,
    ) -> bool:
        """Write a derived status unless the invoice was settled meanwhile.

        Returns:
            True if a row was updated
        """
        with self._using(None) as c:
            cursor = c.execute(
                """
                UPDATE invoices SET status = ?, updated_at = ?
                WHERE id = ? AND status NOT IN ('paid', 'cancelled')
                """,
                (LifecycleStatus(status).value, _iso(updated_at), invoice_id),
            )
            return cursor.rowcount > 0

    def record_reminder(
        self,
        invoice_id: str,
        sent_at: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """Increment reminder_level and timestamp it."""
        with self._using(conn) as c:
            cursor = c.execute("""
                UPDATE invoices SET
                    reminder_level = reminder_level + 1,
                    last_reminder_sent = ?,
                    updated_at = ?
                WHERE id = ?
            """, (_iso(sent_at), _iso(sent_at), invoice_id))
            return cursor.rowcount > 0

    # =========================================================================
    # Payments
    # =========================================================================

    def upsert_payment(self, record: PaymentRecord, now: datetime) -> Tuple[str, bool]:
        """Insert or refresh a payment by (source, source_payment_id).

        matched_invoice_id is never touched here.

        Returns:
            (payment id, created)
        """
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT id FROM payments WHERE source = ? AND source_payment_id = ?",
                (record.source, record.source_payment_id),
            ).fetchone()

            if row:
                conn.execute("""
                    UPDATE payments SET
                        amount = ?, payment_date = ?, reference = ?, account = ?,
                        invoice_ref = ?, updated_at = ?
                    WHERE id = ?
                """, (
                    _money(record.amount),
                    _iso(record.payment_date),
                    record.reference,
                    record.account,
                    record.invoice_ref,
                    _iso(now),
                    row["id"],
                ))
                return row["id"], False

            payment_id = str(uuid.uuid4())
            conn.execute("""
                INSERT INTO payments (
                    id, source, source_payment_id, amount, payment_date, reference,
                    account, invoice_ref, matched_invoice_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?)
            """, (
                payment_id,
                record.source,
                record.source_payment_id,
                _money(record.amount),
                _iso(record.payment_date),
                record.reference,
                record.account,
                record.invoice_ref,
                _iso(now),
                _iso(now),
            ))
            return payment_id, True

    def get_payment(self, payment_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Payment]:
        with self._using(conn) as c:
            row = c.execute("SELECT * FROM payments WHERE id = ?", (payment_id,)).fetchone()
        return Payment.model_validate(dict(row)) if row else None

    def list_payments_without_match(self) -> List[Payment]:
        """Payments that have no payment_matches row yet."""
        with self._using(None) as c:
            rows = c.execute("""
                SELECT p.* FROM payments p
                LEFT JOIN payment_matches m ON m.payment_id = p.id
                WHERE m.id IS NULL
                ORDER BY p.payment_date ASC, p.id ASC
            """).fetchall()
        return [Payment.model_validate(dict(row)) for row in rows]

    def set_payment_matched_invoice(
        self,
        payment_id: str,
        invoice_id: Optional[str],
        updated_at: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        with self._using(conn) as c:
            c.execute(
                "UPDATE payments SET matched_invoice_id = ?, updated_at = ? WHERE id = ?",
                (invoice_id, _iso(updated_at), payment_id),
            )

    # =========================================================================
    # Payment matches
    # =========================================================================

    def insert_payment_match(self, match: PaymentMatch) -> bool:
        """Create a match record unless one already exists for the payment.

        Returns:
            True if a new row was created
        """
        with self._using(None) as c:
            cursor = c.execute("""
                INSERT OR IGNORE INTO payment_matches (
                    id, payment_id, suggested_invoice_id, confidence_score, status,
                    matched_invoice_id, matched_by, matched_at, notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                match.id,
                match.payment_id,
                match.suggested_invoice_id,
                match.confidence_score,
                match.status.value,
                match.matched_invoice_id,
                match.matched_by,
                _iso(match.matched_at),
                match.notes,
                _iso(match.created_at),
                _iso(match.updated_at),
            ))
            return cursor.rowcount > 0

    def get_payment_match(
        self,
        match_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[PaymentMatch]:
        with self._using(conn) as c:
            row = c.execute("SELECT * FROM payment_matches WHERE id = ?", (match_id,)).fetchone()
        return PaymentMatch.model_validate(dict(row)) if row else None

    def list_payment_matches(self, status: Optional[MatchStatus] = None) -> List[PaymentMatch]:
        """List matches, newest payment first."""
        query = """
            SELECT m.* FROM payment_matches m
            JOIN payments p ON p.id = m.payment_id
        """
        params: list = []
        if status is not None:
            query += " WHERE m.status = ?"
            params.append(MatchStatus(status).value)
        query += " ORDER BY p.payment_date DESC, m.id ASC"

        with self._using(None) as c:
            rows = c.execute(query, params).fetchall()
        return [PaymentMatch.model_validate(dict(row)) for row in rows]

    def update_payment_match(self, match: PaymentMatch, conn: Optional[sqlite3.Connection] = None) -> None:
        """Persist the review fields of a match."""
        with self._using(conn) as c:
            c.execute("""
                UPDATE payment_matches SET
                    status = ?,
                    matched_invoice_id = ?,
                    matched_by = ?,
                    matched_at = ?,
                    notes = ?,
                    updated_at = ?
                WHERE id = ?
            """, (
                match.status.value,
                match.matched_invoice_id,
                match.matched_by,
                _iso(match.matched_at),
                match.notes,
                _iso(match.updated_at),
                match.id,
            ))

    def count_matched_for_invoice(
        self,
        invoice_id: str,
        exclude_match_id: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Number of confirmed matches pointing at an invoice."""
        query = """
            SELECT COUNT(*) AS n FROM payment_matches
            WHERE matched_invoice_id = ? AND status = 'matched'
        """
        params: list = [invoice_id]
        if exclude_match_id is not None:
            query += " AND id != ?"
            params.append(exclude_match_id)

        with self._using(conn) as c:
            row = c.execute(query, params).fetchone()
        return row["n"]

    # =========================================================================
    # Sync leases
    # =========================================================================

    def acquire_lease(self, tenant_id: str, owner: str, now: datetime, ttl_seconds: int) -> bool:
        """Take the tenant's sync lease if free, expired, or already ours."""
        expires_at = now + timedelta(seconds=ttl_seconds)
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT owner, expires_at FROM sync_leases WHERE tenant_id = ?",
                (tenant_id,),
            ).fetchone()
            if row and row["owner"] != owner and datetime.fromisoformat(row["expires_at"]) > now:
                return False
            conn.execute("""
                INSERT OR REPLACE INTO sync_leases (tenant_id, owner, acquired_at, expires_at)
                VALUES (?, ?, ?, ?)
            """, (tenant_id, owner, _iso(now), _iso(expires_at)))
            return True

    def renew_lease(self, tenant_id: str, owner: str, now: datetime, ttl_seconds: int) -> bool:
        """Push the lease expiry out; fails if another run took it over."""
        expires_at = now + timedelta(seconds=ttl_seconds)
        with self._using(None) as c:
            cursor = c.execute(
                "UPDATE sync_leases SET expires_at = ? WHERE tenant_id = ? AND owner = ?",
                (_iso(expires_at), tenant_id, owner),
            )
            return cursor.rowcount > 0

    def get_lease_owner(self, tenant_id: str) -> Optional[str]:
        with self._using(None) as c:
            row = c.execute("SELECT owner FROM sync_leases WHERE tenant_id = ?", (tenant_id,)).fetchone()
        return row["owner"] if row else None

    def release_lease(self, tenant_id: str, owner: str) -> bool:
        """Release the lease; only the owner can release it."""
        with self._using(None) as c:
            cursor = c.execute(
                "DELETE FROM sync_leases WHERE tenant_id = ? AND owner = ?",
                (tenant_id, owner),
            )
            return cursor.rowcount > 0
