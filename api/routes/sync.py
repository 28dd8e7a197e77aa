"""Sync endpoints.

Manual trigger for a sync cycle, standalone match suggestion, and metrics.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from api.deps import get_orchestrator
from core.observability.metrics import get_metrics
from reconciliation.engine import ReconciliationOrchestrator
from reconciliation.results import CycleStatus, SyncCycleResult


router = APIRouter()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncData(CamelModel):
    """Counters of a finished sync cycle."""
    run_id: str
    invoices_synced: int
    payments_synced: int
    created: int
    updated: int
    skipped: int
    failed: int
    statuses_changed: int
    matches_created: int
    failed_sources: List[str]
    duration_ms: float
    sources: List[Dict[str, Any]]


class SyncTriggerResponse(CamelModel):
    success: bool
    status: str
    message: str
    data: SyncData
    error: Optional[str] = None


class MatchSuggestionResponse(CamelModel):
    success: bool
    matches_created: int


def _message(result: SyncCycleResult) -> str:
    if result.already_running:
        return "A sync cycle is already running"
    if result.status == CycleStatus.FAILED:
        return "Sync failed"
    if result.status == CycleStatus.COMPLETED_WITH_SKIPS:
        return (
            f"Sync completed with skips: {result.invoices_synced} invoices synced, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
    return f"Sync completed: {result.invoices_synced} invoices synced"


@router.post("/trigger", response_model=SyncTriggerResponse, response_model_by_alias=True)
async def trigger_sync(
    include_matching: bool = Query(True, alias="includeMatching"),
    orchestrator: ReconciliationOrchestrator = Depends(get_orchestrator),
):
    """Run one sync cycle now.

    200 for completed / completed_with_skips, 409 when a cycle is already
    running, 500 when the cycle failed.
    """
    result = await orchestrator.run_sync_cycle(include_matching=include_matching)

    body = SyncTriggerResponse(
        success=result.success,
        status=result.status.value,
        message=_message(result),
        error=result.error,
        data=SyncData(
            run_id=result.run_id,
            invoices_synced=result.invoices_synced,
            payments_synced=result.payments_synced,
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
            failed=result.failed,
            statuses_changed=result.statuses_changed,
            matches_created=result.matches_created,
            failed_sources=result.failed_sources,
            duration_ms=result.duration_ms,
            sources=[s.to_dict() for s in result.sources],
        ),
    )

    if result.already_running:
        status_code = 409
    elif result.status == CycleStatus.FAILED:
        status_code = 500
    else:
        status_code = 200
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))


@router.post("/matches", response_model=MatchSuggestionResponse, response_model_by_alias=True)
async def suggest_matches(
    orchestrator: ReconciliationOrchestrator = Depends(get_orchestrator),
) -> MatchSuggestionResponse:
    """Create pending match suggestions for payments that have none."""
    created = orchestrator.suggest_payment_matches()
    return MatchSuggestionResponse(success=True, matches_created=created)


@router.get("/metrics")
async def sync_metrics() -> Dict[str, Any]:
    """In-process sync and matching metrics."""
    return get_metrics().get_summary()
