from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..common.datetime_utils import StatsPeriod
from .model import AttendanceStatistics, LateEvent, TriggerRule


class StatisticsRepository(Protocol):
    def get(self, *, employee_id: int, period: StatsPeriod) -> Optional[AttendanceStatistics]:
        raise NotImplementedError

    def append_late_event(
        self,
        *,
        employee_id: int,
        period: StatsPeriod,
        event: LateEvent,
        now: datetime,
    ) -> AttendanceStatistics:
        """Create the period row if missing and append the event in one transaction."""

        raise NotImplementedError

    def mark_punishment_triggered(
        self,
        *,
        employee_id: int,
        period: StatsPeriod,
        rule: TriggerRule,
        now: datetime,
    ) -> bool:
        """Atomically flip accumulating -> triggered if the rule holds.

        Returns True only for the caller whose update won.
        """

        raise NotImplementedError

    def raise_punishment_count(self, *, employee_id: int, period: StatsPeriod, at_least: int) -> int:
        """Set punishment_count = max(punishment_count, at_least); returns the stored value."""

        raise NotImplementedError

    def list_untriggered_over(self, *, period: StatsPeriod, rule: TriggerRule) -> Sequence[AttendanceStatistics]:
        raise NotImplementedError

    def list_for_period(self, *, period: StatsPeriod) -> Sequence[AttendanceStatistics]:
        raise NotImplementedError

    def reset(self, *, period: StatsPeriod, employee_id: Optional[int] = None, now: datetime) -> int:
        """Reset counters of one employee (or everyone) for a period; returns rows touched."""

        raise NotImplementedError
