"""Reconciliation orchestrator for receivables sync.

Exposes the cycle and its steps:
- run_sync_cycle() -> SyncCycleResult
- acquire_lease() / renew_lease() / release_lease()
- sync_source(connector) -> SourceSyncResult
- refresh_statuses() -> int
- suggest_payment_matches() -> int

Each step is usable on its own so Temporal activities can drive them
individually. While a run holds the lease, long steps renew it so a
slow cycle is not mistaken for a crashed one.
"""

import asyncio
import time
import uuid
from datetime import date, datetime
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from connectors.http_client import SourceApiError
from connectors.source_base import SourceConnector
from core.config import Settings
from core.errors import (
    LeaseLostError,
    MalformedRecordError,
    PersistenceError,
    SourceUnavailableError,
    SyncAlreadyRunningError,
)
from core.models.receivables import (
    AUTHORITATIVE_STATUSES,
    LifecycleStatus,
    MatchStatus,
    PaymentMatch,
)
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from reconciliation.results import CycleStatus, SourceSyncResult, SyncCycleResult
from reconciliation.selector import best_match
from reconciliation.status import resolve
from reconciliation.upsert import InvoiceUpsertEngine, persist_with_retry
from storage.db import ReceivablesStore


logger = get_logger(__name__)

T = TypeVar("T")

OUTSTANDING_STATUSES = [LifecycleStatus.OPEN, LifecycleStatus.OVERDUE]


def new_run_id() -> str:
    return f"sync-{uuid.uuid4().hex[:12]}"


class ReconciliationOrchestrator:
    """Runs sync cycles for one tenant.

    Example:
        orchestrator = ReconciliationOrchestrator(store, connectors, settings)
        result = await orchestrator.run_sync_cycle()
        print(result.status, result.invoices_synced)
    """

    def __init__(
        self,
        store: ReceivablesStore,
        connectors: Sequence[SourceConnector],
        settings: Optional[Settings] = None,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        """Initialize the orchestrator.

        Args:
            store: Receivables store
            connectors: One connector per enabled source
            settings: Timeouts, lease TTL and tenant (defaults if omitted)
            today: Provider of the current calendar date
            now: Provider of the current timestamp
        """
        self.store = store
        self.connectors = list(connectors)
        self.settings = settings or Settings()
        self.today = today
        self.now = now
        self.upsert_engine = InvoiceUpsertEngine(store, today=today, now=now)
        self.lease_run_id: Optional[str] = None
        self._lease_renewed_at: Optional[datetime] = None

    @property
    def tenant_id(self) -> str:
        return self.settings.tenant_id

    # =========================================================================
    # Lease
    # =========================================================================

    def acquire_lease(self, run_id: str) -> None:
        """Take the tenant's sync lease.

        Raises:
            SyncAlreadyRunningError: another run holds an unexpired lease
        """
        acquired = self.store.acquire_lease(
            self.tenant_id, run_id, self.now(), self.settings.lease_ttl_seconds
        )
        if not acquired:
            raise SyncAlreadyRunningError(self.tenant_id, self.store.get_lease_owner(self.tenant_id))
        self.lease_run_id = run_id
        self._lease_renewed_at = self.now()
        logger.debug(f"Lease acquired by {run_id}")

    def renew_lease(self, run_id: str) -> None:
        """Extend the lease held by run_id and keep renewing it from here on.

        Raises:
            LeaseLostError: the lease expired and another run took it
        """
        now = self.now()
        if not self.store.renew_lease(self.tenant_id, run_id, now, self.settings.lease_ttl_seconds):
            self.lease_run_id = None
            raise LeaseLostError(self.tenant_id, run_id)
        self.lease_run_id = run_id
        self._lease_renewed_at = now

    def _keep_lease(self) -> None:
        """Renew the held lease once a third of its TTL has passed."""
        if self.lease_run_id is None:
            return
        elapsed = (self.now() - self._lease_renewed_at).total_seconds()
        if elapsed >= self.settings.lease_ttl_seconds / 3:
            self.renew_lease(self.lease_run_id)

    def release_lease(self, run_id: str) -> bool:
        self.lease_run_id = None
        released = self.store.release_lease(self.tenant_id, run_id)
        if not released:
            logger.warning(f"Lease for run {run_id} was not held at release")
        return released

    # =========================================================================
    # Per-source ingestion
    # =========================================================================

    async def _fetch(self, source: str, call: Awaitable[T]) -> T:
        """Await a connector call with the fetch timeout, mapping failures."""
        timeout = self.settings.fetch_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            raise SourceUnavailableError(source, f"timed out after {timeout}s")
        except SourceApiError as e:
            raise SourceUnavailableError(source, str(e)) from e
        except OSError as e:
            raise SourceUnavailableError(source, f"{type(e).__name__}: {e}") from e

    async def sync_source(self, connector: SourceConnector) -> SourceSyncResult:
        """Fetch, validate and upsert all invoices and payments of one source.

        A failing or slow source is reported as unavailable, never raised.

        Raises:
            LeaseLostError: the run's lease was taken over mid-sync
        """
        source = connector.source_name
        result = SourceSyncResult(source=source)
        start = time.perf_counter()

        with with_correlation(source=source):
            try:
                await self._fetch(source, connector.connect())
                raw_invoices = await self._fetch(source, connector.fetch_invoices())
                result.fetched = len(raw_invoices)
                logger.info(f"Fetched {result.fetched} invoices")

                payable_refs = self._ingest_invoices(connector, raw_invoices, result)
                await self._ingest_payments(connector, payable_refs, result)

            except SourceUnavailableError as e:
                result.available = False
                result.error = str(e)
                logger.error(f"Source unavailable: {e.reason}")
            finally:
                try:
                    await connector.disconnect()
                except (SourceApiError, OSError) as e:
                    logger.warning(f"Disconnect failed: {e}")

        result.duration_ms = (time.perf_counter() - start) * 1000
        get_metrics().record_source_result(
            source,
            created=result.created,
            updated=result.updated,
            skipped=result.skipped + result.payments_skipped,
            failed=result.failed,
            payments=result.payments_synced,
            unavailable=not result.available,
            duration_ms=result.duration_ms,
        )
        return result

    def _ingest_invoices(
        self,
        connector: SourceConnector,
        raw_invoices: List[dict],
        result: SourceSyncResult,
    ) -> List[str]:
        """Upsert invoices; returns native ids still awaiting payment."""
        payable_refs = []
        for raw in raw_invoices:
            self._keep_lease()
            try:
                record = connector.parse_invoice(raw)
            except MalformedRecordError as e:
                result.skipped += 1
                logger.warning(
                    f"Skipping malformed invoice: {e}",
                    extra_fields={"source_native_id": e.native_id},
                )
                continue

            with with_correlation(
                source_native_id=record.source_native_id,
                invoice_number=record.invoice_number,
            ):
                try:
                    upserted = self.upsert_engine.upsert(record)
                except PersistenceError as e:
                    result.failed += 1
                    logger.error(f"Failed to persist invoice: {e}")
                    continue

            if upserted.created:
                result.created += 1
            else:
                result.updated += 1
            if upserted.status not in AUTHORITATIVE_STATUSES:
                payable_refs.append(record.source_native_id)
        return payable_refs

    async def _ingest_payments(
        self,
        connector: SourceConnector,
        invoice_refs: List[str],
        result: SourceSyncResult,
    ) -> None:
        source = connector.source_name
        for invoice_ref in invoice_refs:
            self._keep_lease()
            try:
                raw_payments = await self._fetch(source, connector.fetch_payments(invoice_ref))
            except SourceUnavailableError as e:
                result.payment_fetch_errors += 1
                logger.warning(
                    f"Could not fetch payments: {e.reason}",
                    extra_fields={"source_native_id": invoice_ref},
                )
                continue

            for raw in raw_payments:
                try:
                    record = connector.parse_payment(raw, invoice_ref=invoice_ref)
                except MalformedRecordError as e:
                    result.payments_skipped += 1
                    logger.warning(f"Skipping malformed payment: {e}")
                    continue

                try:
                    persist_with_retry(
                        lambda: self.store.upsert_payment(record, self.now()),
                        f"payment {source}/{record.source_payment_id}",
                    )
                except PersistenceError as e:
                    result.failed += 1
                    logger.error(
                        f"Failed to persist payment {record.source_payment_id}: {e}",
                        extra_fields={"source_native_id": invoice_ref},
                    )
                    continue
                result.payments_synced += 1

    # =========================================================================
    # Status refresh and matching
    # =========================================================================

    def refresh_statuses(self) -> int:
        """Re-resolve every outstanding invoice; returns how many changed.

        An invoice settled by a reviewer after it was read keeps its status.
        """
        today = self.today()
        now = self.now()
        changed = 0
        for invoice in self.store.list_invoices(statuses=OUTSTANDING_STATUSES):
            status = resolve(invoice.status, invoice.due_date, today)
            if status != invoice.status and self.store.refresh_invoice_status(invoice.id, status, now):
                changed += 1
        if changed:
            logger.info(f"Updated status of {changed} invoices")
        return changed

    def suggest_payment_matches(self) -> int:
        """Create a pending PaymentMatch for every payment that has none."""
        outstanding = self.store.list_invoices(statuses=OUTSTANDING_STATUSES)
        metrics = get_metrics()
        created = 0

        for payment in self.store.list_payments_without_match():
            self._keep_lease()
            candidate = best_match(payment, outstanding)
            now = self.now()
            match = PaymentMatch(
                id=str(uuid.uuid4()),
                payment_id=payment.id,
                suggested_invoice_id=candidate.invoice.id if candidate else None,
                confidence_score=candidate.score if candidate else None,
                status=MatchStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            if self.store.insert_payment_match(match):
                created += 1
                metrics.record_match_suggested(has_candidate=candidate is not None)
                with with_correlation(payment_id=payment.id):
                    if candidate:
                        logger.info(
                            f"Suggested invoice {candidate.invoice.invoice_number} "
                            f"(score {candidate.score}, {candidate.confidence.value})"
                        )
                    else:
                        logger.info("No invoice above the acceptance floor")

        return created

    # =========================================================================
    # Full cycle
    # =========================================================================

    async def run_sync_cycle(
        self,
        include_matching: bool = True,
        run_id: Optional[str] = None,
    ) -> SyncCycleResult:
        """Run one complete sync cycle under the tenant lease.

        Never raises for expected failures; inspect `result.status`.
        """
        run_id = run_id or new_run_id()
        result = SyncCycleResult(run_id=run_id, started_at=self.now().isoformat())
        metrics = get_metrics()
        metrics.record_cycle_started()
        start = time.perf_counter()

        with with_correlation(tenant_id=self.tenant_id, sync_run_id=run_id):
            logger.info(f"Starting sync cycle with {len(self.connectors)} sources")
            try:
                self.acquire_lease(run_id)
            except SyncAlreadyRunningError as e:
                result.already_running = True
                result.error = str(e)
                logger.warning(str(e))
            else:
                try:
                    source_results = await asyncio.gather(
                        *(self.sync_source(connector) for connector in self.connectors),
                        return_exceptions=True,
                    )
                    for source_result in source_results:
                        if isinstance(source_result, BaseException):
                            raise source_result
                        result.add_source(source_result)

                    self.renew_lease(run_id)
                    result.statuses_changed = self.refresh_statuses()
                    if include_matching:
                        self.renew_lease(run_id)
                        result.matches_created = self.suggest_payment_matches()
                except Exception as e:
                    result.error = f"Sync cycle aborted: {type(e).__name__}: {e}"
                    logger.exception(result.error)
                finally:
                    self.release_lease(run_id)

            result.classify()
            result.finished_at = self.now().isoformat()
            result.duration_ms = (time.perf_counter() - start) * 1000
            metrics.record_cycle_finished(result.status.value, result.duration_ms)

            log = logger.info if result.status != CycleStatus.FAILED else logger.error
            log(
                f"Sync cycle {result.status.value}: {result.invoices_synced} invoices, "
                f"{result.payments_synced} payments, {result.matches_created} matches",
                extra_fields={
                    "created": result.created,
                    "updated": result.updated,
                    "skipped": result.skipped,
                    "failed": result.failed,
                    "failed_sources": result.failed_sources,
                },
            )

        return result
