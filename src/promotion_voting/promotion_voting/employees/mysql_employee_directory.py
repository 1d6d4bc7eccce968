from __future__ import annotations

from typing import Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .directory import EmployeeDirectory
from .model import EmployeeProfile

_COLUMNS = "employee_id, full_name, position, store, hire_date, status"


def _row_to_profile(r: dict) -> EmployeeProfile:
    return EmployeeProfile(
        employee_id=int(r["employee_id"]),
        full_name=r["full_name"],
        position=r["position"],
        hire_date=r["hire_date"],
        store=r.get("store"),
        status=r.get("status") or "active",
    )


class MySQLEmployeeDirectory(EmployeeDirectory):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_profile(self, employee_id: int) -> Optional[EmployeeProfile]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM employees WHERE employee_id=%s", (int(employee_id),))
            r = fetchone(cur)
            return _row_to_profile(r) if r else None

    def list_by_position(self, position: str, *, status: str = "active") -> Sequence[EmployeeProfile]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM employees WHERE position=%s AND status=%s ORDER BY employee_id ASC",
                (position, status),
            )
            return [_row_to_profile(r) for r in fetchall(cur)]
