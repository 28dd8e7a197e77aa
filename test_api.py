"""API tests against an app backed by a temporary database."""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from api.deps import get_connectors
from api.server import create_app
from conftest import FakeSourceConnector, days_from_today, raw_invoice, raw_payment
from connectors.http_client import SourceApiError


@pytest.fixture
def sources():
    """Connectors served to every request; tests may replace the list contents."""
    return [
        FakeSourceConnector(
            invoices=[
                raw_invoice("inv-1", "RE-2024-0012", amount="4200.00", due_date=days_from_today(-5)),
                raw_invoice("inv-2", "RE-2024-0013", amount="1500.00", due_date=days_from_today(20)),
                raw_invoice("inv-3", "RE-2024-0014", amount="99.00", due_date=days_from_today(-40), status="cancelled"),
            ],
            payments={
                "inv-1": [raw_payment("pay-1", "4200.00", days_from_today(-1), "Zahlung RE-2024-0012")],
            },
        )
    ]


@pytest.fixture
def app(settings, sources):
    app = create_app(settings)
    app.dependency_overrides[get_connectors] = lambda: sources
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def synced(client):
    response = client.post("/sync/trigger")
    assert response.status_code == 200
    return response.json()


def invoice_id(client, number: str) -> str:
    items = client.get("/receivables").json()["items"]
    return next(item["id"] for item in items if item["invoice_number"] == number)


class TestHealth:

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["services"]["storage"] == "up"
        assert data["services"]["temporal"] == "not_configured"

    def test_probes(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}


class TestSync:

    def test_trigger(self, synced):
        assert synced["success"] is True
        assert synced["status"] == "completed"
        assert synced["data"]["invoicesSynced"] == 3
        assert synced["data"]["paymentsSynced"] == 1
        assert synced["data"]["matchesCreated"] == 1
        assert synced["data"]["failedSources"] == []
        assert synced["error"] is None

    def test_trigger_without_matching(self, client):
        data = client.post("/sync/trigger", params={"includeMatching": "false"}).json()
        assert data["data"]["matchesCreated"] == 0

    def test_trigger_with_skips(self, client, sources):
        sources.append(FakeSourceConnector(name="sevdesk", fail_with=SourceApiError("down", 503)))

        response = client.post("/sync/trigger")

        assert response.status_code == 200
        assert response.json()["status"] == "completed_with_skips"
        assert response.json()["data"]["failedSources"] == ["sevdesk"]

    def test_trigger_all_sources_down(self, client, sources):
        sources[:] = [FakeSourceConnector(fail_with=SourceApiError("down", 503))]

        response = client.post("/sync/trigger")

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert response.json()["status"] == "failed"

    def test_trigger_while_running(self, client, app, settings):
        app.state.store.acquire_lease(settings.tenant_id, "sync-other", datetime.utcnow(), 300)

        response = client.post("/sync/trigger")

        assert response.status_code == 409
        assert response.json()["message"] == "A sync cycle is already running"

    def test_suggest_matches(self, client):
        client.post("/sync/trigger", params={"includeMatching": "false"})

        first = client.post("/sync/matches").json()
        second = client.post("/sync/matches").json()

        assert first == {"success": True, "matchesCreated": 1}
        assert second["matchesCreated"] == 0

    def test_metrics(self, client, synced):
        metrics = client.get("/sync/metrics").json()
        assert metrics["cycles"]["completed"] == 1


class TestReceivables:

    def test_list_and_filter(self, client, synced):
        data = client.get("/receivables").json()
        assert data["total"] == 3
        assert [i["invoice_number"] for i in data["items"]] == ["RE-2024-0014", "RE-2024-0012", "RE-2024-0013"]

        overdue = client.get("/receivables", params={"status": "overdue"}).json()
        assert [i["invoice_number"] for i in overdue["items"]] == ["RE-2024-0012"]

    def test_invalid_status_filter(self, client):
        assert client.get("/receivables", params={"status": "draft"}).status_code == 422

    def test_status_summary(self, client, synced):
        data = client.get("/receivables/status").json()
        assert data["total_invoices"] == 3
        assert data["open_invoices"] == 1
        assert data["overdue_invoices"] == 1
        assert data["cancelled_invoices"] == 1
        assert data["total_overdue_amount"] == "4200.00"
        assert data["total_open_amount"] == "1500.00"

    def test_details(self, client, synced):
        data = client.get(f"/receivables/{invoice_id(client, 'RE-2024-0012')}").json()
        assert data["status"] == "overdue"
        assert data["days_overdue"] == 5

    def test_unknown_invoice(self, client):
        assert client.get("/receivables/missing").status_code == 404
        assert client.post("/receivables/missing/mark-paid").status_code == 404

    def test_mark_paid(self, client, synced):
        target = invoice_id(client, "RE-2024-0013")

        response = client.post(f"/receivables/{target}/mark-paid", json={"paymentDate": days_from_today(0)})

        assert response.status_code == 200
        assert response.json()["invoice"]["status"] == "paid"
        assert response.json()["invoice"]["payment_date"] == days_from_today(0)

    def test_mark_paid_without_body(self, client, synced):
        target = invoice_id(client, "RE-2024-0013")
        assert client.post(f"/receivables/{target}/mark-paid").json()["invoice"]["status"] == "paid"

    def test_mark_cancelled_paid_rejected(self, client, synced):
        target = invoice_id(client, "RE-2024-0014")
        assert client.post(f"/receivables/{target}/mark-paid").status_code == 409

    def test_send_reminder(self, client, synced):
        target = invoice_id(client, "RE-2024-0012")

        client.post(f"/receivables/{target}/send-reminder")
        response = client.post(f"/receivables/{target}/send-reminder")

        assert response.status_code == 200
        assert response.json()["invoice"]["reminder_level"] == 2

    def test_reminder_kept_across_sync(self, client, synced):
        target = invoice_id(client, "RE-2024-0012")
        client.post(f"/receivables/{target}/send-reminder")

        client.post("/sync/trigger")

        assert client.get(f"/receivables/{target}").json()["reminder_level"] == 1

    def test_reminder_on_cancelled_rejected(self, client, synced):
        target = invoice_id(client, "RE-2024-0014")
        assert client.post(f"/receivables/{target}/send-reminder").status_code == 409


class TestPaymentMatches:

    def pending_match(self, client) -> dict:
        return client.get("/payment-matches").json()["pending"][0]

    def test_list(self, client, synced):
        data = client.get("/payment-matches").json()

        assert data["counts"] == {"pending": 1, "matched": 0, "ignored": 0}
        match = data["pending"][0]
        assert match["suggested_invoice"]["invoice_number"] == "RE-2024-0012"
        assert match["confidence_score"] == 100
        assert match["confidence"] == "high"

    def test_confirm_marks_invoice_paid(self, client, synced):
        match = self.pending_match(client)

        response = client.post("/payment-matches", json={
            "matchId": match["id"],
            "status": "matched",
            "matchedBy": "anna",
        })

        assert response.status_code == 200
        assert response.json()["match"]["status"] == "matched"
        assert response.json()["match"]["matched_by"] == "anna"

        invoice = client.get(f"/receivables/{match['suggested_invoice_id']}").json()
        assert invoice["status"] == "paid"
        assert invoice["payment_date"] == days_from_today(-1)

    def test_candidates(self, client, synced):
        match = self.pending_match(client)

        data = client.get(f"/payment-matches/{match['id']}/candidates").json()

        assert data["candidates"][0]["invoice_number"] == "RE-2024-0012"
        assert data["candidates"][0]["score"] == 100

    def test_invalid_transition(self, client, synced):
        match = self.pending_match(client)
        client.post("/payment-matches", json={"matchId": match["id"], "status": "matched"})

        response = client.post("/payment-matches", json={"matchId": match["id"], "status": "ignored"})

        assert response.status_code == 409

    def test_unknown_match(self, client):
        response = client.post("/payment-matches", json={"matchId": "missing", "status": "ignored"})
        assert response.status_code == 404
        assert client.get("/payment-matches/missing/candidates").status_code == 404

    def test_unknown_status_rejected(self, client, synced):
        match = self.pending_match(client)
        response = client.post("/payment-matches", json={"matchId": match["id"], "status": "approved"})
        assert response.status_code == 422

    def test_notes_only_update(self, client, synced):
        match = self.pending_match(client)

        response = client.post("/payment-matches", json={"matchId": match["id"], "notes": "waiting for remittance"})

        assert response.status_code == 200
        assert response.json()["match"]["status"] == "pending"
        assert response.json()["match"]["notes"] == "waiting for remittance"
        assert self.pending_match(client)["notes"] == "waiting for remittance"

    def test_no_change_rejected(self, client, synced):
        match = self.pending_match(client)
        response = client.post("/payment-matches", json={"matchId": match["id"]})
        assert response.status_code == 409
