from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from ..common.datetime_utils import StatsPeriod
from ..core.enums import CampaignOutcome, CampaignStatus, CampaignSubType
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class CampaignWindow:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise ValidationError("Campaign window needs start and end datetimes")
        if self.end <= self.start:
            raise ValidationError("Campaign end time must be after its start time")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class NewCampaign:
    """Everything needed to insert a campaign row."""

    name: str
    target_role: str
    sub_type: CampaignSubType
    window: CampaignWindow
    pass_threshold: float
    max_modifications: int
    created_by: str
    can_modify_votes: bool = True
    buffer_period_days: int = 0
    description: Optional[str] = None
    show_live_results: bool = False
    priority: int = 0
    trigger_employee_id: Optional[int] = None
    trigger_period: Optional[StatsPeriod] = None
    trigger_conditions: Optional[dict] = None
    attempt_number: int = 1
    predecessor_campaign_id: Optional[int] = None

    @property
    def system_generated(self) -> bool:
        return self.sub_type.is_automatic


@dataclass(frozen=True)
class PromotionCampaign:
    """A single time-boxed voting round for a target role."""

    campaign_id: int
    name: str
    target_role: str
    sub_type: CampaignSubType
    status: CampaignStatus
    start_time: datetime
    end_time: datetime
    pass_threshold: float
    max_modifications: int
    can_modify_votes: bool
    buffer_period_days: int
    created_by: str
    description: Optional[str] = None
    is_anonymous: bool = True
    show_live_results: bool = False
    priority: int = 0
    trigger_employee_id: Optional[int] = None
    trigger_period: Optional[StatsPeriod] = None
    trigger_conditions: dict = field(default_factory=dict)
    system_generated: bool = False
    attempt_number: int = 1
    predecessor_campaign_id: Optional[int] = None
    outcome: Optional[CampaignOutcome] = None
    results: Optional[dict] = None
    total_votes: int = 0
    total_voters: int = 0
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def window(self) -> CampaignWindow:
        return CampaignWindow(start=self.start_time, end=self.end_time)

    def accepts_votes_at(self, moment: datetime) -> bool:
        return self.status == CampaignStatus.ACTIVE and self.start_time <= moment <= self.end_time

    def has_ended(self, moment: datetime) -> bool:
        return moment >= self.end_time

    def remaining_minutes(self, moment: datetime) -> int:
        if self.status not in {CampaignStatus.DRAFT, CampaignStatus.ACTIVE} or self.has_ended(moment):
            return 0
        return int((self.end_time - moment).total_seconds() // 60)

    @property
    def accepts_candidate_changes(self) -> bool:
        return self.status in {CampaignStatus.DRAFT, CampaignStatus.ACTIVE}

    def to_public_dict(self, moment: datetime) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "name": self.name,
            "target_role": self.target_role,
            "sub_type": self.sub_type.value,
            "status": self.status.value,
            "start_time": self.start_time.strftime("%Y-%m-%d %H:%M:%S"),
            "end_time": self.end_time.strftime("%Y-%m-%d %H:%M:%S"),
            "remaining_minutes": self.remaining_minutes(moment),
            "can_modify_votes": self.can_modify_votes,
            "max_modifications": self.max_modifications,
            "pass_threshold": self.pass_threshold,
            "is_anonymous": self.is_anonymous,
            "outcome": self.outcome.value if self.outcome else None,
        }

    def to_admin_dict(self, moment: datetime) -> dict:
        out = self.to_public_dict(moment)
        out.update(
            {
                "description": self.description or "",
                "priority": self.priority,
                "buffer_period_days": self.buffer_period_days,
                "show_live_results": self.show_live_results,
                "trigger_employee_id": self.trigger_employee_id,
                "trigger_period": str(self.trigger_period) if self.trigger_period else None,
                "trigger_conditions": self.trigger_conditions,
                "system_generated": self.system_generated,
                "attempt_number": self.attempt_number,
                "predecessor_campaign_id": self.predecessor_campaign_id,
                "results": self.results,
                "total_votes": self.total_votes,
                "total_voters": self.total_voters,
                "created_by": self.created_by,
            }
        )
        return out
