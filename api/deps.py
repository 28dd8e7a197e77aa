"""Request dependencies.

Everything is built from `app.state` so tests can create an app with their
own settings/store, or override these providers via
`app.dependency_overrides`.
"""

from typing import List

from fastapi import Depends, Request

from connectors.source_base import SourceConnector, build_source_connectors
from core.config import Settings
from reconciliation.engine import ReconciliationOrchestrator
from reconciliation.receivables import ReceivablesService
from reconciliation.review import PaymentMatchReviewer
from storage.db import ReceivablesStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ReceivablesStore:
    return request.app.state.store


def get_connectors(settings: Settings = Depends(get_app_settings)) -> List[SourceConnector]:
    """Fresh connectors per request (each owns its HTTP session)."""
    return build_source_connectors(settings)


def get_orchestrator(
    store: ReceivablesStore = Depends(get_store),
    connectors: List[SourceConnector] = Depends(get_connectors),
    settings: Settings = Depends(get_app_settings),
) -> ReconciliationOrchestrator:
    return ReconciliationOrchestrator(store, connectors, settings)


def get_reviewer(
    store: ReceivablesStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> PaymentMatchReviewer:
    return PaymentMatchReviewer(store, mark_invoice_paid_on_match=settings.mark_invoice_paid_on_match)


def get_receivables_service(store: ReceivablesStore = Depends(get_store)) -> ReceivablesService:
    return ReceivablesService(store)
