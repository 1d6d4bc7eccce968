from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class EmployeeProfile:
    """Read-only view of an employee, as supplied by the employee directory."""

    employee_id: int
    full_name: str
    position: str
    hire_date: date
    store: Optional[str] = None
    status: str = "active"

    def days_of_service(self, today: date) -> int:
        return (today - self.hire_date).days

    def years_of_service(self, today: date) -> float:
        return round(self.days_of_service(today) / 365, 1)
