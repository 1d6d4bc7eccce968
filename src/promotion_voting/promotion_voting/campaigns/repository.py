from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import CampaignOutcome, CampaignStatus, CampaignSubType
from .model import NewCampaign, PromotionCampaign


class CampaignRepository(Protocol):
    def get(self, campaign_id: int) -> Optional[PromotionCampaign]:
        raise NotImplementedError

    def create(self, new: NewCampaign, *, status: CampaignStatus) -> PromotionCampaign:
        raise NotImplementedError

    def create_or_get(self, new: NewCampaign, *, status: CampaignStatus) -> tuple[PromotionCampaign, bool]:
        """Insert an automatic campaign, or fetch the row that already holds its unique slot.

        The slots are the single active campaign per (trigger employee, target
        role) and the single successor per predecessor. Returns (campaign, created).
        A successor is only ever matched by its predecessor: when another
        campaign holds the active slot it is inserted as a draft instead.
        """

        raise NotImplementedError

    def find_active_automatic(self, *, trigger_employee_id: int, target_role: str) -> Optional[PromotionCampaign]:
        raise NotImplementedError

    def find_by_predecessor(self, predecessor_campaign_id: int) -> Optional[PromotionCampaign]:
        raise NotImplementedError

    def find_latest_automatic(self, *, trigger_employee_id: int, sub_type: CampaignSubType) -> Optional[PromotionCampaign]:
        raise NotImplementedError

    def list(self, *, status: Optional[CampaignStatus] = None, limit: int = 200) -> Sequence[PromotionCampaign]:
        raise NotImplementedError

    def list_due_for_activation(self, *, now: datetime) -> Sequence[PromotionCampaign]:
        raise NotImplementedError

    def list_lapsed_drafts(self, *, now: datetime) -> Sequence[PromotionCampaign]:
        """Drafts whose end time has passed."""

        raise NotImplementedError

    def list_due_for_resolution(self, *, now: datetime) -> Sequence[PromotionCampaign]:
        """Active campaigns past their end time, plus any left in closing."""

        raise NotImplementedError

    def transition(
        self,
        *,
        campaign_id: int,
        from_statuses: Sequence[CampaignStatus],
        to_status: CampaignStatus,
        now: datetime,
    ) -> bool:
        """Conditional status update; False when the row was not in a from-status.

        Also False when activating would break the one-active-automatic rule.
        """

        raise NotImplementedError

    def begin_closing(self, *, campaign_id: int, now: datetime) -> bool:
        """active -> closing, only once end_time has passed."""

        raise NotImplementedError

    def complete_closing(
        self,
        *,
        campaign_id: int,
        outcome: CampaignOutcome,
        results: dict,
        total_votes: int,
        total_voters: int,
        now: datetime,
    ) -> bool:
        raise NotImplementedError

    def close(self, *, campaign_id: int, now: datetime) -> bool:
        """active -> closed without a tally, only once end_time has passed."""

        raise NotImplementedError

    def update_end_time(self, *, campaign_id: int, end_time: datetime) -> bool:
        raise NotImplementedError
