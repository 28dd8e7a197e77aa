"""Tests for idempotent invoice ingestion."""

import sqlite3
from datetime import date, timedelta
from decimal import Decimal

import pytest

from conftest import NOW, TODAY
from core.errors import PersistenceError
from core.models.receivables import InvoiceRecord, LifecycleStatus
from reconciliation.upsert import InvoiceUpsertEngine


def record(**overrides) -> InvoiceRecord:
    data = dict(
        source="sevdesk",
        source_native_id="42",
        invoice_number="RE-2024-0012",
        customer_id="7",
        customer_name="Solar Energy GmbH",
        gross_amount=Decimal("4200.00"),
        net_amount=Decimal("3529.41"),
        tax_amount=Decimal("670.59"),
        issue_date=date(2024, 10, 15),
        due_date=date(2024, 11, 25),
    )
    data.update(overrides)
    return InvoiceRecord(**data)


@pytest.fixture
def engine(store):
    return InvoiceUpsertEngine(store, today=lambda: TODAY, now=lambda: NOW)


class TestCreateAndUpdate:

    def test_new_record_creates_invoice(self, engine, store):
        result = engine.upsert(record())

        assert result.created is True
        assert result.status == LifecycleStatus.OPEN

        invoice = store.get_invoice(result.invoice_id)
        assert invoice.source == "sevdesk"
        assert invoice.source_id == "42"
        assert invoice.gross_amount == Decimal("4200.00")
        assert invoice.reminder_level == 0

    def test_new_record_past_due_is_overdue(self, engine):
        result = engine.upsert(record(due_date=TODAY - timedelta(days=1)))
        assert result.status == LifecycleStatus.OVERDUE

    def test_same_record_twice_is_idempotent(self, engine, store):
        first = engine.upsert(record())
        second = engine.upsert(record())

        assert second.created is False
        assert second.invoice_id == first.invoice_id
        assert len(store.list_invoices()) == 1

    def test_update_refreshes_source_fields(self, engine, store):
        first = engine.upsert(record())
        engine.upsert(record(gross_amount=Decimal("4300.00"), customer_name="Solar Energy AG"))

        invoice = store.get_invoice(first.invoice_id)
        assert invoice.gross_amount == Decimal("4300.00")
        assert invoice.customer_name == "Solar Energy AG"

    def test_same_native_id_in_different_sources_are_separate(self, engine, store):
        a = engine.upsert(record(source="sevdesk"))
        b = engine.upsert(record(source="reonic"))

        assert a.invoice_id != b.invoice_id
        assert len(store.list_invoices()) == 2


class TestLocalState:

    def test_reminder_level_survives_resync(self, engine, store):
        """Re-syncing an invoice keeps reminders sent locally."""
        result = engine.upsert(record(due_date=TODAY - timedelta(days=5)))
        store.record_reminder(result.invoice_id, NOW)
        store.record_reminder(result.invoice_id, NOW)

        again = engine.upsert(record(due_date=TODAY - timedelta(days=5)))

        invoice = store.get_invoice(again.invoice_id)
        assert again.created is False
        assert invoice.reminder_level == 2
        assert invoice.last_reminder_sent is not None
        assert invoice.status == LifecycleStatus.OVERDUE

    def test_locally_paid_invoice_stays_paid(self, engine, store):
        result = engine.upsert(record())
        store.update_invoice_status(result.invoice_id, LifecycleStatus.PAID, NOW, payment_date=TODAY)

        again = engine.upsert(record())

        assert again.status == LifecycleStatus.PAID
        assert store.get_invoice(result.invoice_id).payment_date == TODAY

    def test_extended_due_date_reopens_overdue_invoice(self, engine, store):
        result = engine.upsert(record(due_date=TODAY - timedelta(days=3)))
        assert result.status == LifecycleStatus.OVERDUE

        again = engine.upsert(record(due_date=TODAY + timedelta(days=14)))
        assert again.status == LifecycleStatus.OPEN


class TestReportedStatus:

    def test_reported_paid_with_date(self, engine, store):
        result = engine.upsert(record(
            reported_status=LifecycleStatus.PAID,
            payment_date=date(2024, 11, 18),
        ))

        invoice = store.get_invoice(result.invoice_id)
        assert invoice.status == LifecycleStatus.PAID
        assert invoice.payment_date == date(2024, 11, 18)

    def test_reported_paid_without_date_defaults_to_today(self, engine, store):
        result = engine.upsert(record(reported_status=LifecycleStatus.PAID))
        assert store.get_invoice(result.invoice_id).payment_date == TODAY

    def test_reported_cancelled_overrides_overdue(self, engine, store):
        engine.upsert(record(due_date=TODAY - timedelta(days=10)))
        again = engine.upsert(record(
            due_date=TODAY - timedelta(days=10),
            reported_status=LifecycleStatus.CANCELLED,
        ))
        assert again.status == LifecycleStatus.CANCELLED

    def test_sources_cannot_report_open(self):
        with pytest.raises(ValueError):
            record(reported_status=LifecycleStatus.OPEN)


class TestPersistenceFailures:

    def test_transient_error_is_retried_once(self, engine, store, monkeypatch):
        real = engine._upsert_once
        calls = []

        def flaky(rec):
            calls.append(rec)
            if len(calls) == 1:
                raise sqlite3.OperationalError("database is locked")
            return real(rec)

        monkeypatch.setattr(engine, "_upsert_once", flaky)
        result = engine.upsert(record())

        assert len(calls) == 2
        assert result.created is True
        assert store.get_invoice(result.invoice_id) is not None

    def test_persistent_transient_error_raises(self, engine, monkeypatch):
        def locked(rec):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(engine, "_upsert_once", locked)
        with pytest.raises(PersistenceError) as exc_info:
            engine.upsert(record())
        assert exc_info.value.transient is True

    def test_integrity_error_is_not_retried(self, engine, monkeypatch):
        calls = []

        def broken(rec):
            calls.append(rec)
            raise sqlite3.IntegrityError("CHECK constraint failed")

        monkeypatch.setattr(engine, "_upsert_once", broken)
        with pytest.raises(PersistenceError) as exc_info:
            engine.upsert(record())
        assert exc_info.value.transient is False
        assert len(calls) == 1
