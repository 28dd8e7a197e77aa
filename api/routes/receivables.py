"""Receivables endpoints.

Invoice listing, status summary and local invoice actions.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from api.deps import get_receivables_service
from core.errors import InvalidActionError, NotFoundError
from core.models.receivables import LifecycleStatus
from reconciliation.receivables import ReceivablesService


router = APIRouter()


class ReceivablesListResponse(BaseModel):
    """List of invoices with resolved status."""
    items: List[Dict[str, Any]]
    total: int


class StatusSummaryResponse(BaseModel):
    """Counts per status and totals."""
    total_invoices: int
    open_invoices: int
    overdue_invoices: int
    paid_invoices: int
    cancelled_invoices: int
    total_open_amount: str
    total_overdue_amount: str
    total_paid_amount: str


class MarkPaidRequest(BaseModel):
    """Optional body for mark-paid."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    payment_date: Optional[date] = Field(None, description="Defaults to today")


class InvoiceActionResponse(BaseModel):
    success: bool
    message: str
    invoice: Dict[str, Any]


@router.get("", response_model=ReceivablesListResponse)
async def list_receivables(
    status: Optional[LifecycleStatus] = Query(None, description="Filter by lifecycle status"),
    service: ReceivablesService = Depends(get_receivables_service),
) -> ReceivablesListResponse:
    """List invoices ordered by due date."""
    invoices = service.list_invoices(status=status)
    return ReceivablesListResponse(
        items=[inv.model_dump(mode="json") for inv in invoices],
        total=len(invoices),
    )


@router.get("/status", response_model=StatusSummaryResponse)
async def receivables_status(
    service: ReceivablesService = Depends(get_receivables_service),
) -> StatusSummaryResponse:
    """Counts and totals with statuses resolved against today."""
    summary = service.summary()
    return StatusSummaryResponse(
        total_invoices=summary.total_invoices,
        open_invoices=summary.open_invoices,
        overdue_invoices=summary.overdue_invoices,
        paid_invoices=summary.paid_invoices,
        cancelled_invoices=summary.cancelled_invoices,
        total_open_amount=str(summary.total_open_amount),
        total_overdue_amount=str(summary.total_overdue_amount),
        total_paid_amount=str(summary.total_paid_amount),
    )


@router.get("/{invoice_id}")
async def get_receivable(
    invoice_id: str,
    service: ReceivablesService = Depends(get_receivables_service),
) -> Dict[str, Any]:
    """Get one invoice including days until due / days overdue."""
    try:
        return service.invoice_details(invoice_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{invoice_id}/mark-paid", response_model=InvoiceActionResponse)
async def mark_paid(
    invoice_id: str,
    request: Optional[MarkPaidRequest] = Body(None),
    service: ReceivablesService = Depends(get_receivables_service),
) -> InvoiceActionResponse:
    """Mark an invoice as paid."""
    try:
        invoice = service.mark_paid(invoice_id, payment_date=request.payment_date if request else None)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidActionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return InvoiceActionResponse(
        success=True,
        message=f"Invoice {invoice.invoice_number} marked as paid",
        invoice=invoice.model_dump(mode="json"),
    )


@router.post("/{invoice_id}/send-reminder", response_model=InvoiceActionResponse)
async def send_reminder(
    invoice_id: str,
    service: ReceivablesService = Depends(get_receivables_service),
) -> InvoiceActionResponse:
    """Record a payment reminder for an invoice."""
    try:
        invoice = service.send_reminder(invoice_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidActionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return InvoiceActionResponse(
        success=True,
        message=f"Reminder {invoice.reminder_level} recorded for invoice {invoice.invoice_number}",
        invoice=invoice.model_dump(mode="json"),
    )
