"""SevDesk connector.

Endpoints:
- GET /Invoice                     -> {"objects": [...]}
- GET /Invoice/{id}/getPayments    -> {"objects": [...]}

SevDesk sends the raw API token in the Authorization header (no scheme).
Invoice status codes: 100 draft, 200 open, 750 partially paid,
1000 paid, 50 deactivated.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from connectors.http_client import SourceApiClient
from connectors.source_base import (
    SourceConfig,
    SourceConnector,
    clean_id,
    register_connector,
)
from core.models.receivables import (
    InvoiceRecord,
    LifecycleStatus,
    PaymentRecord,
    parse_date,
)
from core.observability.logging import get_logger


logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://my.sevdesk.de/api/v1"

STATUS_MAP = {
    "1000": LifecycleStatus.PAID,
    "50": LifecycleStatus.CANCELLED,
}


def _objects(response: Any) -> List[Dict[str, Any]]:
    if isinstance(response, dict):
        return response.get("objects") or []
    if isinstance(response, list):
        return response
    return []


@register_connector("sevdesk")
class SevDeskConnector(SourceConnector):
    """Reads invoices and their payments from SevDesk."""

    def __init__(self, config: SourceConfig):
        super().__init__(config)
        self.client = SourceApiClient(
            base_url=config.base_url or DEFAULT_BASE_URL,
            headers={"Authorization": config.api_key} if config.api_key else {},
            timeout_seconds=config.timeout_seconds,
            retry_config=config.retry_config,
        )

    async def connect(self) -> None:
        await self.client.connect()

    async def disconnect(self) -> None:
        await self.client.disconnect()

    async def fetch_invoices(self) -> List[Dict[str, Any]]:
        logger.info("Fetching invoices from SevDesk")
        return _objects(await self.client.get("/Invoice"))

    async def fetch_payments(self, invoice_ref: str) -> List[Dict[str, Any]]:
        logger.debug(f"Fetching payments for SevDesk invoice {invoice_ref}")
        return _objects(await self.client.get(f"/Invoice/{invoice_ref}/getPayments"))

    def _due_date(self, raw: Dict[str, Any]):
        """dueDate, or invoiceDate + timeToPay days when only those are sent."""
        if raw.get("dueDate"):
            return raw.get("dueDate")
        time_to_pay = raw.get("timeToPay")
        if raw.get("invoiceDate") and time_to_pay not in (None, ""):
            try:
                return parse_date(raw["invoiceDate"]) + timedelta(days=int(time_to_pay))
            except (TypeError, ValueError):
                return None
        return None

    def parse_invoice(self, raw: Dict[str, Any]) -> InvoiceRecord:
        raw = self._require_mapping(raw)
        native_id = clean_id(raw.get("id"))
        contact = raw.get("contact") or {}
        if not isinstance(contact, dict):
            contact = {}

        data = {
            "source": self.source_name,
            "source_native_id": native_id,
            "invoice_number": clean_id(raw.get("invoiceNumber")),
            "customer_id": clean_id(contact.get("id")),
            "customer_name": contact.get("name"),
            "gross_amount": raw.get("sumGross"),
            "net_amount": raw.get("sumNet"),
            "tax_amount": raw.get("sumTax"),
            "currency": raw.get("currency") or "EUR",
            "issue_date": raw.get("invoiceDate"),
            "due_date": self._due_date(raw),
            "reported_status": STATUS_MAP.get(clean_id(raw.get("status")) or ""),
            "payment_date": raw.get("payDate"),
        }
        return self._validate(InvoiceRecord, data, native_id, raw)

    def parse_payment(self, raw: Dict[str, Any], invoice_ref: Optional[str] = None) -> PaymentRecord:
        raw = self._require_mapping(raw)
        native_id = clean_id(raw.get("id"))
        check_account = raw.get("checkAccount") or {}
        if not isinstance(check_account, dict):
            check_account = {}

        data = {
            "source": self.source_name,
            "source_payment_id": native_id,
            "amount": raw.get("amount"),
            "payment_date": raw.get("paymentDate") or raw.get("date"),
            "reference": raw.get("paymtPurpose") or raw.get("purpose"),
            "account": clean_id(check_account.get("id")),
            "invoice_ref": invoice_ref,
        }
        return self._validate(PaymentRecord, data, native_id, raw)
