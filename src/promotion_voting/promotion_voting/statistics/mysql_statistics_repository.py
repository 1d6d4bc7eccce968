from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import StatsPeriod
from ..core.enums import StatisticsState
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_json, to_json
from .model import AttendanceStatistics, LateEvent, TriggerRule
from .repository import StatisticsRepository

_COLUMNS = """
    stats_id, employee_id, year, month, late_count, late_minutes_total,
    late_records, state, punishment_count, triggered_at, last_updated
"""


def _row_to_stats(r: dict) -> AttendanceStatistics:
    records = from_json(r.get("late_records"), default=[]) or []
    return AttendanceStatistics(
        stats_id=int(r["stats_id"]),
        employee_id=int(r["employee_id"]),
        period=StatsPeriod(int(r["year"]), int(r["month"])),
        late_count=int(r["late_count"]),
        late_minutes_total=int(r["late_minutes_total"]),
        state=StatisticsState(r["state"]),
        punishment_count=int(r["punishment_count"]),
        late_records=tuple(LateEvent.from_dict(x) for x in records),
        triggered_at=r.get("triggered_at"),
        last_updated=r.get("last_updated"),
    )


class MySQLStatisticsRepository(StatisticsRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, *, employee_id: int, period: StatsPeriod) -> Optional[AttendanceStatistics]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM attendance_statistics WHERE employee_id=%s AND year=%s AND month=%s",
                (int(employee_id), period.year, period.month),
            )
            r = fetchone(cur)
            return _row_to_stats(r) if r else None

    def append_late_event(
        self,
        *,
        employee_id: int,
        period: StatsPeriod,
        event: LateEvent,
        now: datetime,
    ) -> AttendanceStatistics:
        with db_cursor(self._conn_factory) as (_, cur):
            # Lazily create the period row; a concurrent creator just makes this a no-op.
            cur.execute(
                """
                INSERT IGNORE INTO attendance_statistics(
                    employee_id, year, month, late_count, late_minutes_total, late_records, state, last_updated
                )
                VALUES(%s,%s,%s,0,0,JSON_ARRAY(),%s,%s)
                """,
                (int(employee_id), period.year, period.month, StatisticsState.ACCUMULATING.value, now),
            )
            cur.execute(
                """
                UPDATE attendance_statistics
                SET late_count = late_count + 1,
                    late_minutes_total = late_minutes_total + %s,
                    late_records = JSON_ARRAY_APPEND(COALESCE(late_records, JSON_ARRAY()), '$', CAST(%s AS JSON)),
                    last_updated = %s
                WHERE employee_id=%s AND year=%s AND month=%s
                """,
                (event.minutes, to_json(event.to_dict()), now, int(employee_id), period.year, period.month),
            )
            cur.execute(
                f"SELECT {_COLUMNS} FROM attendance_statistics WHERE employee_id=%s AND year=%s AND month=%s",
                (int(employee_id), period.year, period.month),
            )
            return _row_to_stats(fetchone(cur))

    def mark_punishment_triggered(
        self,
        *,
        employee_id: int,
        period: StatsPeriod,
        rule: TriggerRule,
        now: datetime,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_statistics
                SET state=%s, punishment_count = punishment_count + 1, triggered_at=%s, last_updated=%s
                WHERE employee_id=%s AND year=%s AND month=%s
                  AND state=%s
                  AND (late_count > %s OR late_minutes_total > %s)
                """,
                (
                    StatisticsState.TRIGGERED.value,
                    now,
                    now,
                    int(employee_id),
                    period.year,
                    period.month,
                    StatisticsState.ACCUMULATING.value,
                    rule.max_late_count,
                    rule.max_late_minutes,
                ),
            )
            return cur.rowcount > 0

    def raise_punishment_count(self, *, employee_id: int, period: StatsPeriod, at_least: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_statistics
                SET punishment_count = GREATEST(punishment_count, %s)
                WHERE employee_id=%s AND year=%s AND month=%s
                """,
                (int(at_least), int(employee_id), period.year, period.month),
            )
            cur.execute(
                "SELECT punishment_count FROM attendance_statistics WHERE employee_id=%s AND year=%s AND month=%s",
                (int(employee_id), period.year, period.month),
            )
            r = fetchone(cur)
            return int(r["punishment_count"]) if r else 0

    def list_untriggered_over(self, *, period: StatsPeriod, rule: TriggerRule) -> Sequence[AttendanceStatistics]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_statistics
                WHERE year=%s AND month=%s AND state=%s
                  AND (late_count > %s OR late_minutes_total > %s)
                ORDER BY employee_id ASC
                """,
                (
                    period.year,
                    period.month,
                    StatisticsState.ACCUMULATING.value,
                    rule.max_late_count,
                    rule.max_late_minutes,
                ),
            )
            return [_row_to_stats(r) for r in fetchall(cur)]

    def list_for_period(self, *, period: StatsPeriod) -> Sequence[AttendanceStatistics]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_statistics
                WHERE year=%s AND month=%s
                ORDER BY late_minutes_total DESC, employee_id ASC
                """,
                (period.year, period.month),
            )
            return [_row_to_stats(r) for r in fetchall(cur)]

    def reset(self, *, period: StatsPeriod, employee_id: Optional[int] = None, now: datetime) -> int:
        clauses = ["year=%s", "month=%s"]
        params: list[object] = [period.year, period.month]
        if employee_id is not None:
            clauses.append("employee_id=%s")
            params.append(int(employee_id))

        where = " AND ".join(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE attendance_statistics
                SET late_count=0, late_minutes_total=0, late_records=JSON_ARRAY(),
                    state=%s, punishment_count=0, triggered_at=NULL, last_updated=%s
                WHERE {where}
                """,
                tuple([StatisticsState.ACCUMULATING.value, now] + params),
            )
            return cur.rowcount
