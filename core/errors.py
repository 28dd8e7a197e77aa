"""Exception taxonomy for the receivables engine.

- SourceUnavailableError: a connector fetch failed or timed out
- MalformedRecordError: a raw record is missing or has invalid required fields
- PersistenceError: the store rejected a write (after the transient retry)
- NotFoundError / InvalidTransitionError / InvalidActionError: human actions
- SyncAlreadyRunningError: another cycle holds the tenant sync lease
"""

from typing import Any, Dict, List, Optional


class ReceivablesError(Exception):
    """Base exception for the receivables engine."""
    pass


class SourceUnavailableError(ReceivablesError):
    """An external source could not be fetched (error or timeout)."""

    def __init__(self, source: str, message: str):
        super().__init__(f"Source '{source}' unavailable: {message}")
        self.source = source
        self.reason = message


class MalformedRecordError(ReceivablesError):
    """A raw source record failed validation at the connector boundary."""

    def __init__(
        self,
        source: str,
        native_id: Optional[str],
        errors: List[str],
        raw: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            f"Malformed record from '{source}' (native id: {native_id or 'unknown'}): "
            + "; ".join(errors)
        )
        self.source = source
        self.native_id = native_id
        self.errors = errors
        self.raw = raw or {}


class PersistenceError(ReceivablesError):
    """The store rejected a write."""

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class NotFoundError(ReceivablesError):
    """A referenced invoice, payment or match does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class InvalidTransitionError(ReceivablesError):
    """A payment match status change violates the review state machine."""

    def __init__(self, current: str, requested: str, reason: str):
        super().__init__(f"Cannot change match status {current} -> {requested}: {reason}")
        self.current = current
        self.requested = requested
        self.reason = reason


class InvalidActionError(ReceivablesError):
    """A local invoice action is not allowed in the invoice's current state."""
    pass


class SyncAlreadyRunningError(ReceivablesError):
    """Another sync cycle holds the lease for this tenant."""

    def __init__(self, tenant_id: str, owner: Optional[str] = None):
        super().__init__(f"Sync already running for tenant '{tenant_id}' (run: {owner or 'unknown'})")
        self.tenant_id = tenant_id
        self.owner = owner


class LeaseLostError(ReceivablesError):
    """The sync lease expired and was taken over while the run was working."""

    def __init__(self, tenant_id: str, run_id: str):
        super().__init__(f"Sync lease for tenant '{tenant_id}' is no longer held by run {run_id}")
        self.tenant_id = tenant_id
        self.run_id = run_id
