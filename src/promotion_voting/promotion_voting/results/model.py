from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from ..core.enums import CampaignOutcome, PositionChangeKind


@dataclass(frozen=True)
class PositionChangeOrder:
    """Payload for the external collaborator that actually changes an employee's position."""

    campaign_id: int
    employee_id: int
    kind: PositionChangeKind
    from_position: str
    to_position: str
    decided_at: datetime

    def to_dict(self) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "employee_id": self.employee_id,
            "kind": self.kind.value,
            "from_position": self.from_position,
            "to_position": self.to_position,
            "decided_at": self.decided_at.strftime("%Y-%m-%d %H:%M:%S"),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "PositionChangeOrder":
        return cls(
            campaign_id=int(raw["campaign_id"]),
            employee_id=int(raw["employee_id"]),
            kind=PositionChangeKind(raw["kind"]),
            from_position=raw["from_position"],
            to_position=raw["to_position"],
            decided_at=datetime.strptime(raw["decided_at"], "%Y-%m-%d %H:%M:%S"),
        )


@dataclass(frozen=True)
class CampaignResult:
    campaign_id: int
    outcome: CampaignOutcome
    total_votes: int
    total_voters: int
    winning_percentage: float
    pass_threshold: float
    resolved_at: datetime
    leading_anonymous_id: Optional[str] = None
    ranking: tuple[dict, ...] = field(default_factory=tuple)
    position_change: Optional[PositionChangeOrder] = None
    retry_campaign_id: Optional[int] = None
    escalation_required: bool = False

    @property
    def passed(self) -> bool:
        return self.outcome == CampaignOutcome.PASSED

    def with_retry(self, retry_campaign_id: Optional[int], *, escalation_required: bool = False) -> "CampaignResult":
        return replace(self, retry_campaign_id=retry_campaign_id, escalation_required=escalation_required)

    def to_dict(self) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "outcome": self.outcome.value,
            "total_votes": self.total_votes,
            "total_voters": self.total_voters,
            "winning_percentage": self.winning_percentage,
            "pass_threshold": self.pass_threshold,
            "resolved_at": self.resolved_at.strftime("%Y-%m-%d %H:%M:%S"),
            "leading_candidate": self.leading_anonymous_id,
            "ranking": list(self.ranking),
            "position_change": self.position_change.to_dict() if self.position_change else None,
            "retry_campaign_id": self.retry_campaign_id,
            "escalation_required": self.escalation_required,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "CampaignResult":
        change = raw.get("position_change")
        return cls(
            campaign_id=int(raw["campaign_id"]),
            outcome=CampaignOutcome(raw["outcome"]),
            total_votes=int(raw.get("total_votes") or 0),
            total_voters=int(raw.get("total_voters") or 0),
            winning_percentage=float(raw.get("winning_percentage") or 0),
            pass_threshold=float(raw.get("pass_threshold") or 0),
            resolved_at=datetime.strptime(raw["resolved_at"], "%Y-%m-%d %H:%M:%S"),
            leading_anonymous_id=raw.get("leading_candidate"),
            ranking=tuple(raw.get("ranking") or ()),
            position_change=PositionChangeOrder.from_dict(change) if change else None,
            retry_campaign_id=raw.get("retry_campaign_id"),
            escalation_required=bool(raw.get("escalation_required")),
        )


@dataclass(frozen=True)
class ExpiredCampaignsSummary:
    resolved: tuple[int, ...] = ()
    passed: tuple[int, ...] = ()
    failed: tuple[int, ...] = ()
    retries: tuple[int, ...] = ()
    escalations: tuple[int, ...] = ()
    errors: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "resolved": list(self.resolved),
            "passed": list(self.passed),
            "failed": list(self.failed),
            "retries": list(self.retries),
            "escalations": list(self.escalations),
            "errors": {str(k): v for k, v in self.errors.items()},
        }
