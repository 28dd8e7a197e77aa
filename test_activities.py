"""Tests for the Temporal sync activities (run outside a worker)."""

from datetime import datetime

import pytest
from temporalio.exceptions import ApplicationError
from temporalio.testing import ActivityEnvironment

from activities.sync import (
    CycleStepInput,
    LeaseInput,
    SyncActivities,
    SyncSourceInput,
)
from conftest import FakeSourceConnector, raw_invoice, raw_payment
from connectors.http_client import SourceApiError
from core.observability.metrics import get_metrics


@pytest.fixture
def env():
    return ActivityEnvironment()


@pytest.fixture
def connectors():
    return {
        "reonic": FakeSourceConnector(
            invoices=[raw_invoice("inv-1", "RE-2024-0012", due_date="2099-01-31")],
            payments={"inv-1": [raw_payment("pay-1", "4200.00", "2099-01-30", "RE-2024-0012")]},
        ),
        "sevdesk": FakeSourceConnector(name="sevdesk", fail_with=SourceApiError("down", 503)),
    }


@pytest.fixture
def activities(store, settings, connectors):
    return SyncActivities(store, settings, connector_factory=lambda name: connectors[name])


class TestLeaseActivities:

    async def test_acquire_and_release(self, env, activities, store, settings):
        lease = await env.run(activities.acquire_lease, LeaseInput(run_id="sync-a"))

        assert lease.acquired is True
        assert store.get_lease_owner(settings.tenant_id) == "sync-a"

        released = await env.run(
            activities.release_lease,
            LeaseInput(run_id="sync-a", status="completed", duration_ms=12.5),
        )
        assert released is True
        assert store.get_lease_owner(settings.tenant_id) is None

        cycles = get_metrics().get_summary()["cycles"]
        assert cycles["started"] == 1
        assert cycles["completed"] == 1

    async def test_held_lease_is_reported(self, env, activities):
        await env.run(activities.acquire_lease, LeaseInput(run_id="sync-a"))

        lease = await env.run(activities.acquire_lease, LeaseInput(run_id="sync-b"))

        assert lease.acquired is False
        assert lease.owner == "sync-a"
        assert "already running" in lease.message

    async def test_reacquire_by_same_run(self, env, activities):
        """A retried acquire from the same run succeeds."""
        await env.run(activities.acquire_lease, LeaseInput(run_id="sync-a"))
        lease = await env.run(activities.acquire_lease, LeaseInput(run_id="sync-a"))
        assert lease.acquired is True


class TestSourceActivities:

    @pytest.fixture(autouse=True)
    def lease(self, store, settings):
        store.acquire_lease(settings.tenant_id, "sync-a", datetime.utcnow(), settings.lease_ttl_seconds)

    async def test_configured_sources(self, env, activities, settings):
        assert await env.run(activities.configured_sources) == settings.sources

    async def test_sync_source(self, env, activities, store):
        result = await env.run(activities.sync_source, SyncSourceInput(source="reonic", run_id="sync-a"))

        assert result.available is True
        assert result.created == 1
        assert result.payments_synced == 1
        assert store.get_invoice_by_natural_key("reonic", "inv-1") is not None

    async def test_unavailable_source_returns_result(self, env, activities):
        result = await env.run(activities.sync_source, SyncSourceInput(source="sevdesk", run_id="sync-a"))

        assert result.available is False
        assert "down" in result.error

    async def test_refresh_and_match(self, env, activities):
        await env.run(activities.sync_source, SyncSourceInput(source="reonic", run_id="sync-a"))

        changed = await env.run(activities.refresh_statuses, CycleStepInput(run_id="sync-a"))
        created = await env.run(activities.suggest_matches, CycleStepInput(run_id="sync-a"))
        again = await env.run(activities.suggest_matches, CycleStepInput(run_id="sync-a"))

        assert changed == 0
        assert created == 1
        assert again == 0

    @pytest.mark.parametrize("step", ["refresh_statuses", "suggest_matches"])
    async def test_step_without_lease_is_not_retried(self, env, activities, step):
        with pytest.raises(ApplicationError) as exc_info:
            await env.run(getattr(activities, step), CycleStepInput(run_id="sync-b"))
        assert exc_info.value.non_retryable is True
        assert exc_info.value.type == "LeaseLostError"

    async def test_sync_after_takeover_is_not_retried(self, env, activities, store, settings):
        store.release_lease(settings.tenant_id, "sync-a")
        store.acquire_lease(settings.tenant_id, "sync-manual", datetime.utcnow(), settings.lease_ttl_seconds)

        with pytest.raises(ApplicationError):
            await env.run(activities.sync_source, SyncSourceInput(source="reonic", run_id="sync-a"))

        assert store.get_invoice_by_natural_key("reonic", "inv-1") is None

    async def test_source_activity_renews_lease(self, env, activities, store, settings):
        store.acquire_lease(settings.tenant_id, "sync-a", datetime(2000, 1, 1), settings.lease_ttl_seconds)

        await env.run(activities.sync_source, SyncSourceInput(source="reonic", run_id="sync-a"))

        assert store.acquire_lease(settings.tenant_id, "sync-manual", datetime.utcnow(), 60) is False

    def test_all_lists_every_activity(self, activities):
        names = {fn.__name__ for fn in activities.all()}
        assert names == {
            "configured_sources",
            "acquire_lease",
            "sync_source",
            "refresh_statuses",
            "suggest_matches",
            "release_lease",
        }


class TestWorkflowWiring:

    def test_fixed_workflow_id_per_tenant(self):
        from workflows.sync_workflow import workflow_id_for
        assert workflow_id_for("acme") == "receivables-sync-acme"

    def test_input_defaults(self):
        from workflows.sync_workflow import SyncWorkflowInput
        wf_input = SyncWorkflowInput()
        assert wf_input.sources == []
        assert wf_input.include_matching is True

    async def test_client_requires_endpoint(self, settings):
        from temporal_client import get_temporal_client
        with pytest.raises(ValueError):
            await get_temporal_client(settings)
