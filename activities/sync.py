"""Sync activities for the receivables pipeline.

Temporal activities wrapping the ReconciliationOrchestrator steps so a
workflow can run each source in parallel with its own timeout and retries.

Activities are methods on SyncActivities so the worker (or a test) decides
which store, settings and connectors they use.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from temporalio import activity
from temporalio.exceptions import ApplicationError

from connectors.source_base import SourceConnector, connector_from_settings
from core.config import Settings
from core.errors import LeaseLostError, SyncAlreadyRunningError
from core.observability.logging import with_correlation
from core.observability.metrics import get_metrics
from reconciliation.engine import ReconciliationOrchestrator
from reconciliation.results import SourceSyncResult
from storage.db import ReceivablesStore


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class LeaseInput:
    """Input for lease activities.

    Attributes:
        run_id: Sync run that owns (or wants) the lease
        status: Final cycle status, reported on release
        duration_ms: Cycle duration, reported on release
    """
    run_id: str
    status: Optional[str] = None
    duration_ms: Optional[float] = None


@dataclass
class LeaseOutput:
    acquired: bool
    owner: Optional[str] = None
    message: Optional[str] = None


@dataclass
class SyncSourceInput:
    """Input for sync_source activity."""
    source: str
    run_id: str


@dataclass
class CycleStepInput:
    """Input for refresh/matching activities."""
    run_id: str


ConnectorFactory = Callable[[str], SourceConnector]


def settings_connector_factory(settings: Settings) -> ConnectorFactory:
    """Build connectors from the configured source URLs and keys."""
    def factory(name: str) -> SourceConnector:
        return connector_from_settings(settings, name)
    return factory


def _correlation(run_id: str, tenant_id: str) -> dict:
    info = activity.info()
    return {
        "tenant_id": tenant_id,
        "sync_run_id": run_id,
        "workflow_id": info.workflow_id,
        "activity_name": info.activity_type,
    }


# =============================================================================
# Activity Definitions
# =============================================================================

class SyncActivities:
    """Receivables sync activities bound to one store and configuration.

    Example:
        activities = SyncActivities(store, settings)
        worker = Worker(client, task_queue=..., activities=activities.all())
    """

    def __init__(
        self,
        store: ReceivablesStore,
        settings: Settings,
        connector_factory: Optional[ConnectorFactory] = None,
    ):
        self.store = store
        self.settings = settings
        self.connector_factory = connector_factory or settings_connector_factory(settings)

    def _orchestrator(self, connectors: Sequence[SourceConnector] = ()) -> ReconciliationOrchestrator:
        return ReconciliationOrchestrator(self.store, connectors, self.settings)

    def _leased_orchestrator(
        self,
        run_id: str,
        connectors: Sequence[SourceConnector] = (),
    ) -> ReconciliationOrchestrator:
        """Orchestrator that renews the run's lease while it works.

        Raises:
            ApplicationError: non-retryable, when the lease was taken over
        """
        orchestrator = self._orchestrator(connectors)
        try:
            orchestrator.renew_lease(run_id)
        except LeaseLostError as e:
            raise ApplicationError(str(e), type="LeaseLostError", non_retryable=True) from e
        return orchestrator

    def all(self) -> list:
        """Activity callables to register on a worker."""
        return [
            self.configured_sources,
            self.acquire_lease,
            self.sync_source,
            self.refresh_statuses,
            self.suggest_matches,
            self.release_lease,
        ]

    @activity.defn(name="configured_sources")
    async def configured_sources(self) -> List[str]:
        """Names of the sources enabled on this worker."""
        return list(self.settings.sources)

    @activity.defn(name="acquire_sync_lease")
    async def acquire_lease(self, input: LeaseInput) -> LeaseOutput:
        """Take the tenant's sync lease; reports (not raises) when it is held."""
        with with_correlation(**_correlation(input.run_id, self.settings.tenant_id)):
            try:
                self._orchestrator().acquire_lease(input.run_id)
            except SyncAlreadyRunningError as e:
                activity.logger.warning(str(e))
                return LeaseOutput(acquired=False, owner=e.owner, message=str(e))

        get_metrics().record_cycle_started()
        activity.logger.info(f"Sync lease acquired for run {input.run_id}")
        return LeaseOutput(acquired=True, owner=input.run_id)

    @activity.defn(name="sync_source")
    async def sync_source(self, input: SyncSourceInput) -> SourceSyncResult:
        """Ingest all invoices and payments of one source.

        Source outages come back as `available=False`; only unexpected
        errors fail the activity (and get retried).
        """
        activity.logger.info(f"Syncing source {input.source} (run {input.run_id})")
        connector = self.connector_factory(input.source)

        with with_correlation(**_correlation(input.run_id, self.settings.tenant_id)):
            orchestrator = self._leased_orchestrator(input.run_id, [connector])
            try:
                result = await orchestrator.sync_source(connector)
            except LeaseLostError as e:
                raise ApplicationError(str(e), type="LeaseLostError", non_retryable=True) from e

        activity.logger.info(
            f"Source {input.source}: {result.created} created, {result.updated} updated, "
            f"{result.skipped} skipped, {result.failed} failed, {result.payments_synced} payments"
        )
        return result

    @activity.defn(name="refresh_invoice_statuses")
    async def refresh_statuses(self, input: CycleStepInput) -> int:
        """Re-resolve open/overdue for every unpaid invoice."""
        with with_correlation(**_correlation(input.run_id, self.settings.tenant_id)):
            return self._leased_orchestrator(input.run_id).refresh_statuses()

    @activity.defn(name="suggest_payment_matches")
    async def suggest_matches(self, input: CycleStepInput) -> int:
        """Create pending match suggestions for unmatched payments."""
        with with_correlation(**_correlation(input.run_id, self.settings.tenant_id)):
            orchestrator = self._leased_orchestrator(input.run_id)
            try:
                created = orchestrator.suggest_payment_matches()
            except LeaseLostError as e:
                raise ApplicationError(str(e), type="LeaseLostError", non_retryable=True) from e
        activity.logger.info(f"Created {created} payment match suggestions")
        return created

    @activity.defn(name="release_sync_lease")
    async def release_lease(self, input: LeaseInput) -> bool:
        """Release the lease and record the cycle outcome."""
        with with_correlation(**_correlation(input.run_id, self.settings.tenant_id)):
            released = self._orchestrator().release_lease(input.run_id)

        if input.status:
            get_metrics().record_cycle_finished(input.status, input.duration_ms)
        activity.logger.info(f"Sync lease released for run {input.run_id} ({input.status})")
        return released
