"""Shared pytest fixtures for the receivables test suite."""

import asyncio
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from connectors.reonic import ReonicConnector
from connectors.source_base import SourceConfig
from core.config import Settings
from core.models.receivables import (
    Invoice,
    LifecycleStatus,
    MatchStatus,
    Payment,
    PaymentMatch,
)
from core.observability.metrics import MetricsCollector
from storage.db import ReceivablesStore


TODAY = date(2024, 11, 20)
NOW = datetime(2024, 11, 20, 9, 30, 0)


# =============================================================================
# Fake source
# =============================================================================

class FakeSourceConnector(ReonicConnector):
    """Serves canned records in Reonic's field layout, parsed by the real parser."""

    def __init__(
        self,
        name: str = "reonic",
        invoices: Optional[List[Any]] = None,
        payments: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        fail_with: Optional[BaseException] = None,
        delay: float = 0,
    ):
        super().__init__(SourceConfig(connector_type=name))
        self.invoices = invoices or []
        self.payments = payments or {}
        self.fail_with = fail_with
        self.delay = delay
        self.connected = False
        self.payment_calls: List[str] = []

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def fetch_invoices(self) -> List[Dict[str, Any]]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.invoices)

    async def fetch_payments(self, invoice_ref: str) -> List[Dict[str, Any]]:
        self.payment_calls.append(invoice_ref)
        return list(self.payments.get(invoice_ref, []))


def raw_invoice(
    native_id: str,
    number: str,
    amount="4200.00",
    due_date: str = "2024-11-15",
    status: str = "open",
    customer: str = "Solar Energy GmbH",
    **extra,
) -> Dict[str, Any]:
    """Raw invoice as the Reonic API returns it."""
    data = {
        "id": native_id,
        "invoice_number": number,
        "customer": {"id": f"cust-{native_id}", "name": customer},
        "amount": amount,
        "net_amount": None,
        "tax_amount": None,
        "issue_date": "2024-10-15",
        "due_date": due_date,
        "status": status,
        "currency": "EUR",
    }
    data.update(extra)
    return data


def raw_payment(
    native_id: str,
    amount="4200.00",
    payment_date: str = "2024-11-20",
    reference: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": native_id,
        "amount": amount,
        "payment_date": payment_date,
        "reference": reference,
        "account": "DE89370400440532013000",
    }


# =============================================================================
# Entity builders (no store)
# =============================================================================

def make_invoice(**overrides) -> Invoice:
    data = dict(
        id=str(uuid.uuid4()),
        source="reonic",
        source_id=f"native-{uuid.uuid4().hex[:6]}",
        invoice_number="RE-2024-0012",
        customer_name="Musterfirma GmbH",
        gross_amount=Decimal("4200.00"),
        currency="EUR",
        due_date=date(2024, 11, 15),
        status=LifecycleStatus.OPEN,
        created_at=NOW,
        updated_at=NOW,
    )
    data.update(overrides)
    return Invoice(**data)


def make_payment(**overrides) -> Payment:
    data = dict(
        id=str(uuid.uuid4()),
        source="reonic",
        source_payment_id=f"pay-{uuid.uuid4().hex[:6]}",
        amount=Decimal("4200.00"),
        payment_date=date(2024, 11, 20),
        reference="Zahlung RE-2024-0012",
        created_at=NOW,
    )
    data.update(overrides)
    return Payment(**data)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def reset_metrics():
    """Each test starts with empty metrics."""
    MetricsCollector.instance().reset()
    yield


@pytest.fixture
def store(tmp_path) -> ReceivablesStore:
    db = ReceivablesStore(tmp_path / "receivables.db")
    db.init_db()
    return db


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        db_path=tmp_path / "receivables.db",
        tenant_id="test-tenant",
        sources=["reonic"],
        fetch_timeout_seconds=2,
        lease_ttl_seconds=60,
    )


@pytest.fixture
def seed(store):
    """Insert invoices/payments/matches directly through the store."""

    class Seeder:
        def invoice(self, **overrides) -> Invoice:
            invoice = make_invoice(**overrides)
            store.insert_invoice(invoice)
            return invoice

        def payment(self, **overrides) -> Payment:
            from core.models.receivables import PaymentRecord

            payment = make_payment(**overrides)
            record = PaymentRecord(
                source=payment.source,
                source_payment_id=payment.source_payment_id,
                amount=payment.amount,
                payment_date=payment.payment_date,
                reference=payment.reference,
            )
            payment_id, _ = store.upsert_payment(record, NOW)
            return store.get_payment(payment_id)

        def match(self, payment: Payment, invoice: Optional[Invoice] = None, score: Optional[int] = 100) -> PaymentMatch:
            match = PaymentMatch(
                id=str(uuid.uuid4()),
                payment_id=payment.id,
                suggested_invoice_id=invoice.id if invoice else None,
                confidence_score=score if invoice else None,
                status=MatchStatus.PENDING,
                created_at=NOW,
                updated_at=NOW,
            )
            store.insert_payment_match(match)
            return match

    return Seeder()


def days_from_today(days: int) -> str:
    """ISO date relative to the real current date (for API tests)."""
    return (date.today() + timedelta(days=days)).isoformat()
