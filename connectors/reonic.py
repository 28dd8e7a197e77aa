"""Reonic connector.

Endpoints:
- GET /invoices                  -> [...] (or {"data": [...]})
- GET /invoices/{id}/payments    -> [...] (or {"data": [...]})

Authenticates with a bearer token.
"""

from typing import Any, Dict, List, Optional

from connectors.http_client import SourceApiClient
from connectors.source_base import (
    SourceConfig,
    SourceConnector,
    clean_id,
    register_connector,
)
from core.models.receivables import InvoiceRecord, LifecycleStatus, PaymentRecord
from core.observability.logging import get_logger


logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.reonic.de/v1"

STATUS_MAP = {
    "paid": LifecycleStatus.PAID,
    "cancelled": LifecycleStatus.CANCELLED,
    "canceled": LifecycleStatus.CANCELLED,
}


def _items(response: Any) -> List[Dict[str, Any]]:
    if isinstance(response, list):
        return response
    if isinstance(response, dict):
        return response.get("data") or []
    return []


@register_connector("reonic")
class ReonicConnector(SourceConnector):
    """Reads invoices and their payments from Reonic."""

    def __init__(self, config: SourceConfig):
        super().__init__(config)
        self.client = SourceApiClient(
            base_url=config.base_url or DEFAULT_BASE_URL,
            headers={"Authorization": f"Bearer {config.api_key}"} if config.api_key else {},
            timeout_seconds=config.timeout_seconds,
            retry_config=config.retry_config,
        )

    async def connect(self) -> None:
        await self.client.connect()

    async def disconnect(self) -> None:
        await self.client.disconnect()

    async def fetch_invoices(self) -> List[Dict[str, Any]]:
        logger.info("Fetching invoices from Reonic")
        return _items(await self.client.get("/invoices"))

    async def fetch_payments(self, invoice_ref: str) -> List[Dict[str, Any]]:
        logger.debug(f"Fetching payments for Reonic invoice {invoice_ref}")
        return _items(await self.client.get(f"/invoices/{invoice_ref}/payments"))

    def parse_invoice(self, raw: Dict[str, Any]) -> InvoiceRecord:
        raw = self._require_mapping(raw)
        native_id = clean_id(raw.get("id"))
        customer = raw.get("customer") or {}
        if not isinstance(customer, dict):
            customer = {}

        status = str(raw.get("status") or "").strip().lower()
        data = {
            "source": self.source_name,
            "source_native_id": native_id,
            "invoice_number": clean_id(raw.get("invoice_number")),
            "customer_id": clean_id(customer.get("id")),
            "customer_name": customer.get("name"),
            "gross_amount": raw.get("amount"),
            "net_amount": raw.get("net_amount"),
            "tax_amount": raw.get("tax_amount"),
            "currency": raw.get("currency") or "EUR",
            "issue_date": raw.get("issue_date"),
            "due_date": raw.get("due_date"),
            "reported_status": STATUS_MAP.get(status),
            "payment_date": raw.get("paid_at") or raw.get("payment_date"),
        }
        return self._validate(InvoiceRecord, data, native_id, raw)

    def parse_payment(self, raw: Dict[str, Any], invoice_ref: Optional[str] = None) -> PaymentRecord:
        raw = self._require_mapping(raw)
        native_id = clean_id(raw.get("id"))

        data = {
            "source": self.source_name,
            "source_payment_id": native_id,
            "amount": raw.get("amount"),
            "payment_date": raw.get("payment_date") or raw.get("date"),
            "reference": raw.get("reference"),
            "account": clean_id(raw.get("account")),
            "invoice_ref": invoice_ref,
        }
        return self._validate(PaymentRecord, data, native_id, raw)
