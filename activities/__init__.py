"""Activity definitions module."""

from activities.sync import (
    SyncActivities,
    LeaseInput,
    LeaseOutput,
    SyncSourceInput,
    CycleStepInput,
    settings_connector_factory,
)

__all__ = [
    "SyncActivities",
    "LeaseInput",
    "LeaseOutput",
    "SyncSourceInput",
    "CycleStepInput",
    "settings_connector_factory",
]
