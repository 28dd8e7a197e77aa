"""Start a receivables sync.

Modes:
- default: start one ReceivablesSyncWorkflow run and wait for the result
- --schedule: register the cron workflow (SYNC_CRON_SCHEDULE, default daily 02:00)
- --local: run one cycle in-process, without Temporal

Examples:
    python scripts/start_sync.py
    python scripts/start_sync.py --schedule
    python scripts/start_sync.py --local --no-matching
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from temporalio.client import WorkflowAlreadyStartedError

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from connectors.source_base import build_source_connectors
from core.config import get_settings
from core.observability.logging import configure_logging
from reconciliation.engine import ReconciliationOrchestrator
from storage.db import ReceivablesStore
from temporal_client import get_temporal_client
from workflows.sync_workflow import ReceivablesSyncWorkflow, SyncWorkflowInput, workflow_id_for


logger = logging.getLogger(__name__)


async def run_local(include_matching: bool) -> dict:
    """Run one cycle in this process."""
    settings = get_settings()
    store = ReceivablesStore(settings.db_path)
    store.init_db()
    orchestrator = ReconciliationOrchestrator(store, build_source_connectors(settings), settings)
    result = await orchestrator.run_sync_cycle(include_matching=include_matching)
    return result.to_dict()


async def start_sync_workflow(include_matching: bool, schedule: bool) -> dict:
    """Start the sync workflow once, or register it on the cron schedule.

    Returns:
        dict: Cycle result (one-off) or the scheduled workflow's id
    """
    settings = get_settings()
    client = await get_temporal_client(settings)
    logger.info(f"Connected to Temporal: {client.namespace}")

    workflow_input = SyncWorkflowInput(
        tenant_id=settings.tenant_id,
        include_matching=include_matching,
    )
    workflow_id = workflow_id_for(settings.tenant_id)

    if schedule:
        logger.info(f"Scheduling {workflow_id} with cron '{settings.sync_cron_schedule}'")
        try:
            handle = await client.start_workflow(
                ReceivablesSyncWorkflow.run,
                workflow_input,
                id=workflow_id,
                task_queue=settings.temporal_task_queue,
                cron_schedule=settings.sync_cron_schedule,
            )
        except WorkflowAlreadyStartedError:
            logger.info(f"Cron workflow {workflow_id} is already scheduled")
            return {"workflow_id": workflow_id, "scheduled": True, "already_scheduled": True}
        return {"workflow_id": handle.id, "scheduled": True}

    # One-off runs use their own id; the sync lease keeps them from
    # overlapping with the scheduled cycle.
    run_workflow_id = f"{workflow_id}-manual-{datetime.utcnow():%Y%m%d%H%M%S}"
    logger.info(f"Starting {run_workflow_id} on task queue '{settings.temporal_task_queue}'...")
    handle = await client.start_workflow(
        ReceivablesSyncWorkflow.run,
        workflow_input,
        id=run_workflow_id,
        task_queue=settings.temporal_task_queue,
    )
    logger.info("Waiting for result...")
    result = await handle.result()
    return result.to_dict()


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Start a receivables sync")
    parser.add_argument("--schedule", action="store_true", help="Register the cron workflow")
    parser.add_argument("--local", action="store_true", help="Run in-process without Temporal")
    parser.add_argument("--no-matching", action="store_true", help="Skip payment match suggestions")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(
        level=getattr(logging, settings.log_level, logging.INFO),
        json_format=settings.log_json,
    )

    include_matching = not args.no_matching
    try:
        if args.local:
            result = asyncio.run(run_local(include_matching))
        else:
            result = asyncio.run(start_sync_workflow(include_matching, args.schedule))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))
    if result.get("status") == "failed":
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
