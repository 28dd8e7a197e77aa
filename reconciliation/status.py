"""Invoice lifecycle status resolution.

Exposes:
- resolve(current_status, due_date, today) -> LifecycleStatus
- days_until_due(due_date, today) -> int
- days_overdue(due_date, today) -> int
"""

from datetime import date, datetime
from typing import Union

from core.models.receivables import AUTHORITATIVE_STATUSES, LifecycleStatus


DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    """Reduce a datetime to its calendar date."""
    if isinstance(value, datetime):
        return value.date()
    return value


def resolve(
    current_status: Union[LifecycleStatus, str],
    due_date: DateLike,
    today: DateLike,
) -> LifecycleStatus:
    """Derive the lifecycle status of an invoice.

    Paid and cancelled are returned unchanged. Anything else, including
    statuses this engine does not know (e.g. a source's "pending" or
    "draft"), becomes overdue when the due date lies strictly before today,
    open otherwise. An invoice due today is still open.
    """
    try:
        status = LifecycleStatus(current_status)
    except ValueError:
        status = None
    if status in AUTHORITATIVE_STATUSES:
        return status

    if _as_date(due_date) < _as_date(today):
        return LifecycleStatus.OVERDUE
    return LifecycleStatus.OPEN


def days_until_due(due_date: DateLike, today: DateLike) -> int:
    """Days from today until the due date (negative once past due)."""
    return (_as_date(due_date) - _as_date(today)).days


def days_overdue(due_date: DateLike, today: DateLike) -> int:
    """Days past the due date, 0 if not yet due."""
    return max(0, (_as_date(today) - _as_date(due_date)).days)
