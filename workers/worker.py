"""Worker for the receivables sync pipeline.

Connects to Temporal, listens on the sync task queue and executes the
ReceivablesSyncWorkflow and its activities against the configured store.

Run with --queue <name> to override TEMPORAL_TASK_QUEUE.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from activities.sync import SyncActivities
from core.config import get_settings
from core.observability.logging import configure_logging
from storage.db import ReceivablesStore
from temporal_client import get_temporal_client
from workflows.sync_workflow import ReceivablesSyncWorkflow


logger = logging.getLogger(__name__)


async def run_worker(queue: str = None):
    """Start a worker listening on the sync task queue.

    Args:
        queue: Task queue to poll (defaults to TEMPORAL_TASK_QUEUE)

    Raises:
        Exception: If connection to Temporal fails
    """
    settings = get_settings()
    task_queue = queue or settings.temporal_task_queue
    client = None

    try:
        store = ReceivablesStore(settings.db_path)
        store.init_db()
        activities = SyncActivities(store, settings)

        client = await get_temporal_client(settings)
        logger.info(f"Connected to Temporal: {client.namespace}")

        worker = Worker(
            client,
            task_queue=task_queue,
            workflows=[ReceivablesSyncWorkflow],
            activities=activities.all(),
        )

        logger.info(f"Worker created for queue '{task_queue}':")
        logger.info(f"  - Tenant: {settings.tenant_id}")
        logger.info(f"  - Sources: {', '.join(settings.sources)}")
        logger.info(f"  - Database: {settings.db_path}")

        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()

    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Receivables Sync Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=None,
        help="Task queue to poll (default: TEMPORAL_TASK_QUEUE or receivables-sync)"
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(
        level=getattr(logging, settings.log_level, logging.INFO),
        json_format=settings.log_json,
    )
    asyncio.run(run_worker(queue=args.queue))


if __name__ == "__main__":
    main()
