from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import EmployeeProfile


class EmployeeDirectory(Protocol):
    """External collaborator: the engine only reads ids, roles and profile fields."""

    def get_profile(self, employee_id: int) -> Optional[EmployeeProfile]:
        raise NotImplementedError

    def list_by_position(self, position: str, *, status: str = "active") -> Sequence[EmployeeProfile]:
        raise NotImplementedError
