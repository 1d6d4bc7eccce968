from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from ..common.datetime_utils import StatsPeriod
from ..core.enums import StatisticsState


@dataclass(frozen=True)
class LateEvent:
    event_date: date
    minutes: int
    reason: str

    def to_dict(self) -> dict:
        return {"date": self.event_date.strftime("%Y-%m-%d"), "minutes": self.minutes, "reason": self.reason}

    @classmethod
    def from_dict(cls, raw: dict) -> "LateEvent":
        d = raw.get("date")
        if isinstance(d, str):
            d = datetime.strptime(d, "%Y-%m-%d").date()
        return cls(event_date=d, minutes=int(raw.get("minutes") or 0), reason=str(raw.get("reason") or ""))


@dataclass(frozen=True)
class TriggerRule:
    """Punishment predicate: strictly more than either threshold."""

    max_late_count: int
    max_late_minutes: int

    def is_met(self, late_count: int, late_minutes_total: int) -> bool:
        return late_count > self.max_late_count or late_minutes_total > self.max_late_minutes


@dataclass(frozen=True)
class AttendanceStatistics:
    """One row per (employee, year, month)."""

    stats_id: int
    employee_id: int
    period: StatsPeriod
    late_count: int
    late_minutes_total: int
    state: StatisticsState
    punishment_count: int
    late_records: tuple[LateEvent, ...] = field(default_factory=tuple)
    triggered_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    @property
    def is_punishment_triggered(self) -> bool:
        return self.state == StatisticsState.TRIGGERED

    def should_trigger_punishment(self, rule: TriggerRule) -> bool:
        # Edge-triggered: once fired it stays quiet until the period is reset.
        return not self.is_punishment_triggered and rule.is_met(self.late_count, self.late_minutes_total)


@dataclass(frozen=True)
class LateEventOutcome:
    statistics: AttendanceStatistics
    triggered: bool
