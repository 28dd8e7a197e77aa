"""Tests for best-match and candidate selection."""

from datetime import date, timedelta
from decimal import Decimal

from conftest import make_invoice, make_payment
from core.models.receivables import ConfidenceLevel
from reconciliation.selector import ACCEPTANCE_FLOOR, best_match, possible_matches


PAYMENT_DATE = date(2024, 11, 20)


def payment(**overrides):
    data = dict(amount=Decimal("4200.00"), payment_date=PAYMENT_DATE, reference=None)
    data.update(overrides)
    return make_payment(**data)


class TestBestMatch:

    def test_picks_highest_score(self):
        exact = make_invoice(invoice_number="RE-1001", gross_amount=Decimal("4200.00"), due_date=PAYMENT_DATE)
        amount_only = make_invoice(invoice_number="RE-1002", gross_amount=Decimal("4200.00"), due_date=PAYMENT_DATE - timedelta(days=60))
        unrelated = make_invoice(invoice_number="RE-1003", gross_amount=Decimal("99.00"), due_date=PAYMENT_DATE)

        match = best_match(payment(reference="RE-1001"), [unrelated, amount_only, exact])

        assert match is not None
        assert match.invoice.id == exact.id
        assert match.score == 100
        assert match.confidence == ConfidenceLevel.HIGH

    def test_none_when_nothing_exceeds_floor(self):
        # date 20 + full reference 20 = 40, not above the floor
        invoice = make_invoice(invoice_number="RE-1001", gross_amount=Decimal("999.00"), due_date=PAYMENT_DATE - timedelta(days=10))
        p = payment(reference="RE-1001")

        assert best_match(p, [invoice]) is None
        candidates = possible_matches(p, [invoice])
        assert [c.score for c in candidates] == [ACCEPTANCE_FLOOR]

    def test_none_for_no_invoices(self):
        assert best_match(payment(), []) is None
        assert possible_matches(payment(), []) == []

    def test_none_for_unrelated_payment(self):
        invoice = make_invoice(gross_amount=Decimal("4200.00"), due_date=PAYMENT_DATE - timedelta(days=40))
        assert best_match(payment(amount=Decimal("4205.00")), [invoice]) is None


class TestTieBreak:

    def test_earlier_due_date_wins(self):
        later = make_invoice(id="a", invoice_number="X-1", due_date=PAYMENT_DATE + timedelta(days=2))
        earlier = make_invoice(id="b", invoice_number="X-2", due_date=PAYMENT_DATE - timedelta(days=2))

        assert best_match(payment(), [later, earlier]).invoice.id == "b"
        assert best_match(payment(), [earlier, later]).invoice.id == "b"

    def test_lower_id_wins_on_same_due_date(self):
        first = make_invoice(id="inv-001", invoice_number="X-1", due_date=PAYMENT_DATE)
        second = make_invoice(id="inv-002", invoice_number="X-2", due_date=PAYMENT_DATE)

        assert best_match(payment(), [second, first]).invoice.id == "inv-001"
        assert [c.invoice.id for c in possible_matches(payment(), [second, first])] == ["inv-001", "inv-002"]


class TestPossibleMatches:

    def test_sorted_descending(self):
        invoices = [
            make_invoice(invoice_number="A-1", gross_amount=Decimal("4200.00"), due_date=PAYMENT_DATE - timedelta(days=20)),
            make_invoice(invoice_number="A-2", gross_amount=Decimal("4200.00"), due_date=PAYMENT_DATE),
            make_invoice(invoice_number="A-3", gross_amount=Decimal("4200.00"), due_date=PAYMENT_DATE - timedelta(days=10)),
        ]
        scores = [c.score for c in possible_matches(payment(), invoices)]
        assert scores == [80, 70, 60]

    def test_min_score_filter(self):
        invoices = [
            make_invoice(invoice_number="A-1", gross_amount=Decimal("4200.00"), due_date=PAYMENT_DATE),
            make_invoice(invoice_number="A-2", gross_amount=Decimal("1.00"), due_date=PAYMENT_DATE),
        ]
        assert len(possible_matches(payment(), invoices, min_score=0)) == 2
        assert len(possible_matches(payment(), invoices)) == 1
        assert possible_matches(payment(), invoices, min_score=81) == []

    def test_candidate_serialization(self):
        invoice = make_invoice(invoice_number="A-1", gross_amount=Decimal("4200.00"), due_date=PAYMENT_DATE)
        data = possible_matches(payment(), [invoice])[0].to_dict()

        assert data["invoice_id"] == invoice.id
        assert data["score"] == 80
        assert data["confidence"] == "medium"
        assert data["breakdown"] == {"amount": 50, "date": 30, "reference": 0, "total": 80}
