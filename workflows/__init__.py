"""Workflow definitions module."""

from workflows.sync_workflow import (
    ReceivablesSyncWorkflow,
    SyncWorkflowInput,
    TASK_QUEUE,
    workflow_id_for,
)

__all__ = ["ReceivablesSyncWorkflow", "SyncWorkflowInput", "TASK_QUEUE", "workflow_id_for"]
