"""Tests for invoice lifecycle status resolution."""

from datetime import date, datetime, timedelta

import pytest

from core.models.receivables import LifecycleStatus
from reconciliation.status import days_overdue, days_until_due, resolve


TODAY = date(2024, 11, 20)


class TestResolve:
    """resolve(current_status, due_date, today)"""

    def test_due_yesterday_becomes_overdue(self):
        assert resolve(LifecycleStatus.OPEN, TODAY - timedelta(days=1), TODAY) == LifecycleStatus.OVERDUE

    def test_due_today_is_still_open(self):
        assert resolve(LifecycleStatus.OPEN, TODAY, TODAY) == LifecycleStatus.OPEN

    def test_future_due_date_is_open(self):
        assert resolve(LifecycleStatus.OPEN, TODAY + timedelta(days=30), TODAY) == LifecycleStatus.OPEN

    def test_overdue_with_extended_due_date_goes_back_to_open(self):
        assert resolve(LifecycleStatus.OVERDUE, TODAY + timedelta(days=3), TODAY) == LifecycleStatus.OPEN

    @pytest.mark.parametrize("status", [LifecycleStatus.PAID, LifecycleStatus.CANCELLED])
    def test_authoritative_status_is_never_recomputed(self, status):
        long_ago = TODAY - timedelta(days=365)
        assert resolve(status, long_ago, TODAY) == status
        assert resolve(status, TODAY + timedelta(days=10), TODAY) == status

    def test_accepts_string_status(self):
        assert resolve("open", TODAY - timedelta(days=2), TODAY) == LifecycleStatus.OVERDUE
        assert resolve("paid", TODAY - timedelta(days=2), TODAY) == LifecycleStatus.PAID

    @pytest.mark.parametrize("status", ["pending", "draft", ""])
    def test_unknown_status_is_derived_from_due_date(self, status):
        assert resolve(status, TODAY - timedelta(days=1), TODAY) == LifecycleStatus.OVERDUE
        assert resolve(status, TODAY, TODAY) == LifecycleStatus.OPEN

    def test_datetimes_compared_by_calendar_day(self):
        due = datetime(2024, 11, 20, 23, 59)
        now = datetime(2024, 11, 20, 0, 1)
        assert resolve(LifecycleStatus.OPEN, due, now) == LifecycleStatus.OPEN

        later = datetime(2024, 11, 21, 0, 0, 1)
        assert resolve(LifecycleStatus.OPEN, due, later) == LifecycleStatus.OVERDUE

    def test_idempotent(self):
        for status in LifecycleStatus:
            for offset in (-5, 0, 5):
                due = TODAY + timedelta(days=offset)
                once = resolve(status, due, TODAY)
                assert resolve(once, due, TODAY) == once


class TestDueDateHelpers:

    def test_days_until_due(self):
        assert days_until_due(date(2024, 11, 25), TODAY) == 5
        assert days_until_due(TODAY, TODAY) == 0
        assert days_until_due(date(2024, 11, 18), TODAY) == -2

    def test_days_overdue(self):
        assert days_overdue(date(2024, 11, 15), TODAY) == 5
        assert days_overdue(TODAY, TODAY) == 0
        assert days_overdue(date(2024, 12, 1), TODAY) == 0
