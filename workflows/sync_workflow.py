"""
Receivables Sync Workflow

One sync cycle per execution:
ACQUIRE_LEASE → SYNC_SOURCES (parallel) → REFRESH_STATUSES → SUGGEST_MATCHES → RELEASE_LEASE

Started once by the API/CLI or on a cron schedule by scripts/start_sync.py.
The workflow id is fixed per tenant so two scheduled cycles never run side
by side; manual runs are kept out by the tenant lease. The source, refresh
and matching activities renew that lease while they work and fail without
retry once it has been taken over.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError

with workflow.unsafe.imports_passed_through():
    from activities.sync import (
        CycleStepInput,
        LeaseInput,
        SyncActivities,
        SyncSourceInput,
    )
    from reconciliation.results import SourceSyncResult, SyncCycleResult


TASK_QUEUE = "receivables-sync"

LEASE_TIMEOUT = timedelta(seconds=30)
SOURCE_TIMEOUT = timedelta(minutes=10)
STEP_TIMEOUT = timedelta(minutes=5)

LEASE_RETRY = RetryPolicy(maximum_attempts=3)
SOURCE_RETRY = RetryPolicy(
    initial_interval=timedelta(seconds=5),
    backoff_coefficient=2.0,
    maximum_attempts=2,
)
STEP_RETRY = RetryPolicy(maximum_attempts=3)


def workflow_id_for(tenant_id: str) -> str:
    """Fixed workflow id per tenant."""
    return f"receivables-sync-{tenant_id}"


@dataclass
class SyncWorkflowInput:
    """Input for the receivables sync workflow.

    Attributes:
        tenant_id: Tenant being synced
        sources: Sources to sync; empty means every source the worker has configured
        include_matching: Also create payment match suggestions
    """
    tenant_id: str = "default"
    sources: List[str] = field(default_factory=list)
    include_matching: bool = True


@workflow.defn
class ReceivablesSyncWorkflow:
    """Runs one receivables sync cycle."""

    def __init__(self):
        self._stage = "PENDING"

    @workflow.query
    def get_stage(self) -> str:
        return self._stage

    @workflow.run
    async def run(self, input: SyncWorkflowInput) -> SyncCycleResult:
        run_id = f"sync-{workflow.info().run_id[:12]}"
        started = workflow.now()
        result = SyncCycleResult(run_id=run_id, started_at=started.isoformat())

        self._stage = "ACQUIRE_LEASE"
        lease = await workflow.execute_activity_method(
            SyncActivities.acquire_lease,
            LeaseInput(run_id=run_id),
            start_to_close_timeout=LEASE_TIMEOUT,
            retry_policy=LEASE_RETRY,
        )
        if not lease.acquired:
            workflow.logger.warning(f"Skipping cycle: {lease.message}")
            result.already_running = True
            result.error = lease.message
            result.classify()
            self._stage = "SKIPPED"
            return result

        try:
            sources = input.sources or await workflow.execute_activity_method(
                SyncActivities.configured_sources,
                start_to_close_timeout=LEASE_TIMEOUT,
                retry_policy=STEP_RETRY,
            )

            self._stage = "SYNC_SOURCES"
            workflow.logger.info(f"Syncing {len(sources)} sources: {sources}")
            outcomes = await asyncio.gather(
                *(
                    workflow.execute_activity_method(
                        SyncActivities.sync_source,
                        SyncSourceInput(source=source, run_id=run_id),
                        start_to_close_timeout=SOURCE_TIMEOUT,
                        retry_policy=SOURCE_RETRY,
                    )
                    for source in sources
                ),
                return_exceptions=True,
            )
            for source, outcome in zip(sources, outcomes):
                if isinstance(outcome, BaseException):
                    workflow.logger.error(f"Source {source} failed: {outcome}")
                    outcome = SourceSyncResult(source=source, available=False, error=str(outcome))
                result.add_source(outcome)

            self._stage = "REFRESH_STATUSES"
            result.statuses_changed = await workflow.execute_activity_method(
                SyncActivities.refresh_statuses,
                CycleStepInput(run_id=run_id),
                start_to_close_timeout=STEP_TIMEOUT,
                retry_policy=STEP_RETRY,
            )

            if input.include_matching:
                self._stage = "SUGGEST_MATCHES"
                result.matches_created = await workflow.execute_activity_method(
                    SyncActivities.suggest_matches,
                    CycleStepInput(run_id=run_id),
                    start_to_close_timeout=STEP_TIMEOUT,
                    retry_policy=STEP_RETRY,
                )

        except ActivityError as e:
            workflow.logger.error(f"Sync cycle aborted: {e}")
            result.error = f"Sync cycle aborted: {e.cause or e}"

        finally:
            result.classify()
            finished = workflow.now()
            result.finished_at = finished.isoformat()
            result.duration_ms = (finished - started).total_seconds() * 1000

            self._stage = "RELEASE_LEASE"
            await workflow.execute_activity_method(
                SyncActivities.release_lease,
                LeaseInput(run_id=run_id, status=result.status.value, duration_ms=result.duration_ms),
                start_to_close_timeout=LEASE_TIMEOUT,
                retry_policy=LEASE_RETRY,
            )

        self._stage = result.status.value.upper()
        workflow.logger.info(
            f"Sync cycle {result.status.value}: {result.invoices_synced} invoices, "
            f"{result.payments_synced} payments, {result.matches_created} matches"
        )
        return result
