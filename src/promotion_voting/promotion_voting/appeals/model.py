from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.enums import AppealOutcome, AppealStatus, AppealType

_FMT = "%Y-%m-%d %H:%M:%S"


def _fmt(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(_FMT) if value else None


@dataclass(frozen=True)
class NewAppeal:
    campaign_id: int
    appellant_id: int
    appeal_type: AppealType
    reason: str
    submitted_at: datetime
    appeal_deadline: datetime
    resolution_due: datetime
    target_employee_id: Optional[int] = None
    original_result: Optional[dict] = None
    evidence: tuple[str, ...] = ()
    supporting_employee_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class VoteAppeal:
    """A complaint against a closed campaign's result or process."""

    appeal_id: int
    campaign_id: int
    appellant_id: int
    appeal_type: AppealType
    reason: str
    status: AppealStatus
    submitted_at: datetime
    appeal_deadline: datetime
    resolution_due: datetime
    target_employee_id: Optional[int] = None
    original_result: Optional[dict] = None
    evidence: tuple[str, ...] = ()
    supporting_employee_ids: tuple[int, ...] = ()
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    outcome: Optional[AppealOutcome] = None

    @property
    def can_be_withdrawn(self) -> bool:
        return self.status.is_open

    def is_overdue(self, moment: datetime) -> bool:
        return self.status.is_open and moment > self.resolution_due

    @property
    def processing_hours(self) -> Optional[int]:
        if not self.reviewed_at:
            return None
        return round((self.reviewed_at - self.submitted_at).total_seconds() / 3600)

    def to_dict(self, moment: datetime) -> dict:
        return {
            "appeal_id": self.appeal_id,
            "campaign_id": self.campaign_id,
            "appellant_id": self.appellant_id,
            "target_employee_id": self.target_employee_id,
            "appeal_type": self.appeal_type.value,
            "reason": self.reason,
            "status": self.status.value,
            "submitted_at": _fmt(self.submitted_at),
            "appeal_deadline": _fmt(self.appeal_deadline),
            "resolution_due": _fmt(self.resolution_due),
            "evidence": list(self.evidence),
            "supporting_employee_ids": list(self.supporting_employee_ids),
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _fmt(self.reviewed_at),
            "review_notes": self.review_notes,
            "outcome": self.outcome.value if self.outcome else None,
            "original_result": self.original_result,
            "is_overdue": self.is_overdue(moment),
            "can_be_withdrawn": self.can_be_withdrawn,
            "processing_hours": self.processing_hours,
        }


@dataclass(frozen=True)
class AppealEligibility:
    eligible: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {"eligible": self.eligible, "reason": self.reason}


@dataclass(frozen=True)
class AppealStatistics:
    total: int
    by_status: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)

    def _rate(self, status: AppealStatus) -> float:
        if self.total <= 0:
            return 0.0
        return round(self.by_status.get(status.value, 0) / self.total * 100, 2)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "by_status": dict(self.by_status),
            "by_type": dict(self.by_type),
            "approval_rate": self._rate(AppealStatus.APPROVED),
            "rejection_rate": self._rate(AppealStatus.REJECTED),
        }
