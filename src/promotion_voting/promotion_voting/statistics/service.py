from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Sequence

from ..common.datetime_utils import StatsPeriod, now_local
from ..core.constants import DEFAULT_LATE_COUNT_THRESHOLD, DEFAULT_LATE_MINUTES_THRESHOLD, DEFAULT_LATE_REASON
from ..core.exceptions import NotFoundError, ValidationError
from .model import AttendanceStatistics, LateEvent, LateEventOutcome, TriggerRule
from .repository import StatisticsRepository

logger = logging.getLogger(__name__)


class AttendanceStatisticsTracker:
    """Per-employee monthly punctuality aggregates and punishment trigger detection.

    The only writer of attendance_statistics rows.
    """

    def __init__(
        self,
        statistics: StatisticsRepository,
        *,
        late_count_threshold: int = DEFAULT_LATE_COUNT_THRESHOLD,
        late_minutes_threshold: int = DEFAULT_LATE_MINUTES_THRESHOLD,
    ):
        self._statistics = statistics
        self._rule = TriggerRule(
            max_late_count=int(late_count_threshold),
            max_late_minutes=int(late_minutes_threshold),
        )

    @property
    def rule(self) -> TriggerRule:
        return self._rule

    def record_late_event(
        self,
        employee_id: int,
        *,
        event_date: date,
        minutes: int,
        reason: str = "",
        period: Optional[StatsPeriod] = None,
        now: datetime | None = None,
    ) -> LateEventOutcome:
        """Append a late event and report whether it fired the punishment trigger.

        The trigger fires at most once per period: the predicate check and the
        state flip happen in a single conditional update in storage.
        """
        now = now or now_local()
        if int(employee_id) <= 0:
            raise ValidationError("Invalid employee")
        try:
            minutes = int(minutes)
        except (TypeError, ValueError):
            raise ValidationError("Late minutes must be an integer")
        if minutes <= 0:
            raise ValidationError("Late minutes must be > 0")

        period = period or StatsPeriod.of(event_date)
        if not period.contains(event_date):
            raise ValidationError(f"Event date {event_date} is outside period {period}")

        event = LateEvent(event_date=event_date, minutes=minutes, reason=(reason or "").strip() or DEFAULT_LATE_REASON)
        stats = self._statistics.append_late_event(employee_id=int(employee_id), period=period, event=event, now=now)

        triggered = False
        if stats.should_trigger_punishment(self._rule):
            triggered = self._statistics.mark_punishment_triggered(
                employee_id=int(employee_id), period=period, rule=self._rule, now=now
            )
            if triggered:
                logger.info(
                    "Punishment trigger fired for employee %s in %s (late %s times / %s minutes)",
                    employee_id,
                    period,
                    stats.late_count,
                    stats.late_minutes_total,
                )
                stats = self.get(employee_id, period)

        return LateEventOutcome(statistics=stats, triggered=triggered)

    def mark_punishment_triggered(self, employee_id: int, period: StatsPeriod, *, now: datetime | None = None) -> bool:
        return self._statistics.mark_punishment_triggered(
            employee_id=int(employee_id), period=period, rule=self._rule, now=now or now_local()
        )

    def record_punishment_round(self, employee_id: int, period: StatsPeriod, round_number: int) -> int:
        """Make punishment_count reflect a retry round; safe to repeat."""
        count = self._statistics.raise_punishment_count(
            employee_id=int(employee_id), period=period, at_least=int(round_number)
        )
        logger.info("Employee %s punishment count for %s is now %s", employee_id, period, count)
        return count

    def get(self, employee_id: int, period: StatsPeriod) -> AttendanceStatistics:
        stats = self._statistics.get(employee_id=int(employee_id), period=period)
        if not stats:
            raise NotFoundError(f"No statistics for employee {employee_id} in {period}")
        return stats

    def find(self, employee_id: int, period: StatsPeriod) -> Optional[AttendanceStatistics]:
        return self._statistics.get(employee_id=int(employee_id), period=period)

    def find_punishment_candidates(self, period: StatsPeriod) -> Sequence[AttendanceStatistics]:
        return self._statistics.list_untriggered_over(period=period, rule=self._rule)

    def list_period(self, period: StatsPeriod) -> Sequence[AttendanceStatistics]:
        return self._statistics.list_for_period(period=period)

    def reset_monthly_stats(self, employee_id: int, period: StatsPeriod, *, now: datetime | None = None) -> None:
        """Administrative reset of a single employee's period."""
        if not self._statistics.reset(period=period, employee_id=int(employee_id), now=now or now_local()):
            raise NotFoundError(f"No statistics for employee {employee_id} in {period}")
        logger.info("Statistics reset for employee %s in %s", employee_id, period)

    def reset_all_monthly_stats(self, period: StatsPeriod, *, now: datetime | None = None) -> int:
        touched = self._statistics.reset(period=period, now=now or now_local())
        logger.info("Statistics reset for %s rows in %s", touched, period)
        return touched
