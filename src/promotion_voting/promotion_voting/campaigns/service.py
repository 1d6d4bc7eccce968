from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional, Sequence

from ..common.datetime_utils import StatsPeriod, now_local
from ..common.validators import require_non_empty, require_non_negative_int, require_percentage
from ..core.constants import (
    AUTO_DEMOTION_BUFFER_DAYS,
    AUTO_DEMOTION_PRIORITY,
    AUTO_PROMOTION_BUFFER_DAYS,
    AUTO_PROMOTION_PRIORITY,
    DEFAULT_MAX_MODIFICATIONS,
    DEFAULT_MAX_PUNISHMENT_ROUNDS,
    DEFAULT_PASS_THRESHOLD,
    SYSTEM_ACTOR,
)
from ..core.enums import CampaignOutcome, CampaignStatus, CampaignSubType
from ..core.exceptions import (
    CampaignNotActive,
    CampaignNotEnded,
    InvalidTransition,
    NotFoundError,
    RetryLimitExceeded,
    ValidationError,
)
from ..candidates.model import CandidateProfile
from ..employees.model import EmployeeProfile
from ..notifications.notifier import CAMPAIGN_OPENED, ESCALATION_REQUIRED, LoggingNotifier, Notifier, safe_notify
from ..statistics.service import AttendanceStatisticsTracker
from .model import CampaignWindow, NewCampaign, PromotionCampaign
from .repository import CampaignRepository

if TYPE_CHECKING:
    from ..candidates.service import CandidateRegistry

logger = logging.getLogger(__name__)

_DEFAULT_PRIORITY = {
    CampaignSubType.MANUAL: 0,
    CampaignSubType.AUTO_PROMOTION: AUTO_PROMOTION_PRIORITY,
    CampaignSubType.AUTO_DEMOTION: AUTO_DEMOTION_PRIORITY,
}

_DEFAULT_BUFFER_DAYS = {
    CampaignSubType.AUTO_PROMOTION: AUTO_PROMOTION_BUFFER_DAYS,
    CampaignSubType.AUTO_DEMOTION: AUTO_DEMOTION_BUFFER_DAYS,
}


class CampaignManager:
    """Campaign lifecycle: creation, activation, closing and buffered retries.

    Together with the result resolver this is the only writer of campaign rows.
    """

    def __init__(
        self,
        campaigns: CampaignRepository,
        registry: "CandidateRegistry",
        tracker: AttendanceStatisticsTracker,
        *,
        notifier: Optional[Notifier] = None,
        max_punishment_rounds: int = DEFAULT_MAX_PUNISHMENT_ROUNDS,
    ):
        self._campaigns = campaigns
        self._registry = registry
        self._tracker = tracker
        self._notifier = notifier or LoggingNotifier()
        self._max_rounds = int(max_punishment_rounds)

    # ----- reads -----

    def get(self, campaign_id: int) -> PromotionCampaign:
        campaign = self._campaigns.get(int(campaign_id))
        if not campaign:
            raise NotFoundError(f"Campaign {campaign_id} does not exist")
        return campaign

    def list_campaigns(self, *, status: Optional[CampaignStatus] = None) -> Sequence[PromotionCampaign]:
        return self._campaigns.list(status=status)

    def list_open_for_voting(self, *, now: datetime | None = None) -> Sequence[PromotionCampaign]:
        now = now or now_local()
        campaigns = self._campaigns.list(status=CampaignStatus.ACTIVE)
        return sorted(
            (c for c in campaigns if c.accepts_votes_at(now)),
            key=lambda c: (-c.priority, c.end_time, c.campaign_id),
        )

    def list_due_for_resolution(self, *, now: datetime | None = None) -> Sequence[PromotionCampaign]:
        return self._campaigns.list_due_for_resolution(now=now or now_local())

    def find_open_automatic(self, trigger_employee_id: int, sub_type: CampaignSubType) -> Optional[PromotionCampaign]:
        """Latest draft or active automatic campaign of this kind for the employee."""
        latest = self._campaigns.find_latest_automatic(trigger_employee_id=int(trigger_employee_id), sub_type=sub_type)
        if latest and latest.status in {CampaignStatus.DRAFT, CampaignStatus.ACTIVE}:
            return latest
        return None

    def in_retry_buffer(self, trigger_employee_id: int, sub_type: CampaignSubType, *, now: datetime) -> bool:
        latest = self._campaigns.find_latest_automatic(trigger_employee_id=int(trigger_employee_id), sub_type=sub_type)
        if not latest or latest.outcome != CampaignOutcome.FAILED:
            return False
        return now < latest.end_time + timedelta(days=latest.buffer_period_days)

    # ----- creation -----

    def open_manual_campaign(
        self,
        *,
        name: str,
        target_role: str,
        window: CampaignWindow,
        created_by: str,
        pass_threshold: float = DEFAULT_PASS_THRESHOLD,
        max_modifications: int = DEFAULT_MAX_MODIFICATIONS,
        can_modify_votes: bool = True,
        description: Optional[str] = None,
        show_live_results: bool = False,
        priority: int = 0,
        now: datetime | None = None,
    ) -> PromotionCampaign:
        """Create a manual campaign; it starts active when now falls inside its window."""
        now = now or now_local()
        new = NewCampaign(
            name=require_non_empty(name, "Campaign name"),
            target_role=require_non_empty(target_role, "Target role"),
            sub_type=CampaignSubType.MANUAL,
            window=window,
            pass_threshold=require_percentage(pass_threshold, "Pass threshold"),
            max_modifications=require_non_negative_int(max_modifications, "Max modifications"),
            can_modify_votes=bool(can_modify_votes),
            description=(description or "").strip() or None,
            show_live_results=bool(show_live_results),
            priority=int(priority),
            created_by=require_non_empty(created_by, "Created by"),
        )
        if window.end <= now:
            raise ValidationError("Campaign window has already ended")

        status = CampaignStatus.ACTIVE if window.contains(now) else CampaignStatus.DRAFT
        campaign = self._campaigns.create(new, status=status)
        logger.info("Manual campaign %s opened for %s as %s", campaign.campaign_id, campaign.target_role, status.value)
        if status == CampaignStatus.ACTIVE:
            self._announce_open(campaign)
        return campaign

    def open_automatic_campaign(
        self,
        *,
        candidate: EmployeeProfile,
        sub_type: CampaignSubType,
        target_role: str,
        window: CampaignWindow,
        pass_threshold: float,
        buffer_period_days: Optional[int] = None,
        max_modifications: int = DEFAULT_MAX_MODIFICATIONS,
        trigger_period: Optional[StatsPeriod] = None,
        trigger_conditions: Optional[dict] = None,
        now: datetime | None = None,
    ) -> PromotionCampaign:
        """Open a system campaign with the triggering employee as sole candidate.

        Create-or-fetch: while an active automatic campaign for the same
        (trigger employee, target role) exists, that campaign is returned.
        """
        now = now or now_local()
        if not sub_type.is_automatic:
            raise ValidationError("Automatic campaigns must be auto_promotion or auto_demotion")
        if buffer_period_days is None:
            buffer_period_days = _DEFAULT_BUFFER_DAYS[sub_type]

        verb = "Demotion" if sub_type == CampaignSubType.AUTO_DEMOTION else "Promotion"
        new = NewCampaign(
            name=f"{verb} vote - {candidate.full_name}",
            target_role=require_non_empty(target_role, "Target role"),
            sub_type=sub_type,
            window=window,
            pass_threshold=require_percentage(pass_threshold, "Pass threshold"),
            max_modifications=require_non_negative_int(max_modifications, "Max modifications"),
            buffer_period_days=require_non_negative_int(buffer_period_days, "Buffer period days"),
            description=(
                f"{verb} vote for {candidate.full_name}: {candidate.position} -> {target_role}"
            ),
            priority=_DEFAULT_PRIORITY[sub_type],
            created_by=SYSTEM_ACTOR,
            trigger_employee_id=candidate.employee_id,
            trigger_period=trigger_period,
            trigger_conditions=dict(trigger_conditions or {}),
        )
        profile = CandidateProfile.from_employee(candidate, today=now.date(), statement=new.description)
        return self._open_system_campaign(new, profile=profile, now=now)

    def _open_system_campaign(
        self,
        new: NewCampaign,
        *,
        profile: CandidateProfile,
        now: datetime,
    ) -> PromotionCampaign:
        status = CampaignStatus.ACTIVE if new.window.start <= now else CampaignStatus.DRAFT
        campaign, created = self._campaigns.create_or_get(new, status=status)
        if created:
            logger.info(
                "Automatic %s campaign %s opened for employee %s (attempt %s, %s)",
                campaign.sub_type.value,
                campaign.campaign_id,
                campaign.trigger_employee_id,
                campaign.attempt_number,
                campaign.status.value,
            )
        else:
            logger.warning(
                "Trigger for employee %s collapsed into existing campaign %s",
                new.trigger_employee_id,
                campaign.campaign_id,
            )

        # Re-ensured on every call so a crash between the two writes heals itself.
        if campaign.accepts_candidate_changes:
            self._registry.ensure_candidate(
                campaign,
                employee_id=new.trigger_employee_id,
                profile=profile,
                nominated_by=SYSTEM_ACTOR,
                now=now,
            )
        if created and campaign.status == CampaignStatus.ACTIVE:
            self._announce_open(campaign)
        return campaign

    # ----- lifecycle -----

    def activate_due_campaigns(self, *, now: datetime | None = None) -> list[int]:
        now = now or now_local()
        activated: list[int] = []
        for campaign in self._campaigns.list_due_for_activation(now=now):
            if self._campaigns.transition(
                campaign_id=campaign.campaign_id,
                from_statuses=[CampaignStatus.DRAFT],
                to_status=CampaignStatus.ACTIVE,
                now=now,
            ):
                logger.info("Campaign %s activated", campaign.campaign_id)
                activated.append(campaign.campaign_id)
                self._announce_open(replace(campaign, status=CampaignStatus.ACTIVE))
            else:
                logger.warning(
                    "Campaign %s not activated: status changed or an active automatic campaign already exists",
                    campaign.campaign_id,
                )
        self.cancel_lapsed_drafts(now=now)
        return activated

    def cancel_lapsed_drafts(self, *, now: datetime | None = None) -> list[int]:
        """Cancel drafts whose whole window passed without activation.

        An automatic round lost this way is escalated, since nobody voted on it.
        """
        now = now or now_local()
        cancelled: list[int] = []
        for campaign in self._campaigns.list_lapsed_drafts(now=now):
            if not self._campaigns.transition(
                campaign_id=campaign.campaign_id,
                from_statuses=[CampaignStatus.DRAFT],
                to_status=CampaignStatus.CANCELLED,
                now=now,
            ):
                continue
            reason = f"window ended at {campaign.end_time} before the campaign could be activated"
            logger.warning("Campaign %s cancelled: %s", campaign.campaign_id, reason)
            cancelled.append(campaign.campaign_id)
            if campaign.system_generated:
                safe_notify(
                    self._notifier,
                    ESCALATION_REQUIRED,
                    {
                        "campaign_id": campaign.campaign_id,
                        "trigger_employee_id": campaign.trigger_employee_id,
                        "attempt_number": campaign.attempt_number,
                        "reason": reason,
                    },
                )
        return cancelled

    def close_campaign(self, campaign_id: int, *, now: datetime | None = None) -> PromotionCampaign:
        """active -> closed without resolving; only once the end time has passed."""
        now = now or now_local()
        campaign = self.get(campaign_id)
        if campaign.status != CampaignStatus.ACTIVE:
            raise CampaignNotActive(f"Campaign {campaign_id} is {campaign.status.value}")
        if not campaign.has_ended(now):
            raise CampaignNotEnded(f"Campaign {campaign_id} ends at {campaign.end_time}")
        if not self._campaigns.close(campaign_id=campaign.campaign_id, now=now):
            raise InvalidTransition(f"Campaign {campaign_id} changed state while closing")
        logger.info("Campaign %s closed", campaign_id)
        return self.get(campaign_id)

    def cancel_campaign(self, campaign_id: int, *, actor: str, now: datetime | None = None) -> PromotionCampaign:
        now = now or now_local()
        campaign = self.get(campaign_id)
        if campaign.status not in {CampaignStatus.DRAFT, CampaignStatus.ACTIVE}:
            raise InvalidTransition(f"Cannot cancel a {campaign.status.value} campaign")
        if not self._campaigns.transition(
            campaign_id=campaign.campaign_id,
            from_statuses=[CampaignStatus.DRAFT, CampaignStatus.ACTIVE],
            to_status=CampaignStatus.CANCELLED,
            now=now,
        ):
            raise InvalidTransition(f"Campaign {campaign_id} changed state while cancelling")
        logger.info("Campaign %s cancelled by %s", campaign_id, actor)
        return self.get(campaign_id)

    def end_early(self, campaign_id: int, *, now: datetime | None = None) -> PromotionCampaign:
        """Pull the end time of an active campaign back to now."""
        now = now or now_local()
        campaign = self.get(campaign_id)
        if campaign.status != CampaignStatus.ACTIVE:
            raise CampaignNotActive(f"Campaign {campaign_id} is {campaign.status.value}")
        if campaign.has_ended(now):
            return campaign
        if now <= campaign.start_time:
            raise ValidationError("Campaign has not started yet")
        if not self._campaigns.update_end_time(campaign_id=campaign.campaign_id, end_time=now):
            raise InvalidTransition(f"Campaign {campaign_id} changed state while ending")
        logger.info("Campaign %s ended early at %s", campaign_id, now)
        return self.get(campaign_id)

    def begin_closing(self, campaign_id: int, *, now: datetime) -> bool:
        return self._campaigns.begin_closing(campaign_id=int(campaign_id), now=now)

    def complete_closing(
        self,
        campaign_id: int,
        *,
        outcome: CampaignOutcome,
        results: dict,
        total_votes: int,
        total_voters: int,
        now: datetime,
    ) -> bool:
        return self._campaigns.complete_closing(
            campaign_id=int(campaign_id),
            outcome=outcome,
            results=results,
            total_votes=int(total_votes),
            total_voters=int(total_voters),
            now=now,
        )

    # ----- retries -----

    def schedule_retry(self, failed_campaign_id: int, *, now: datetime | None = None) -> int:
        """Create (or fetch) the successor of a failed automatic campaign.

        The successor starts after the buffer period, keeps the failed
        campaign's duration and counts as the next punishment round.
        """
        now = now or now_local()
        failed = self.get(failed_campaign_id)
        if not failed.system_generated or failed.trigger_employee_id is None:
            raise InvalidTransition("Only automatic campaigns can be retried")
        if failed.status != CampaignStatus.CLOSED or failed.outcome != CampaignOutcome.FAILED:
            raise InvalidTransition(f"Campaign {failed_campaign_id} has not failed")

        existing = self._campaigns.find_by_predecessor(failed.campaign_id)
        if existing:
            self._sync_punishment_round(existing)
            return existing.campaign_id

        if failed.attempt_number >= self._max_rounds:
            raise RetryLimitExceeded(
                f"Employee {failed.trigger_employee_id} reached {failed.attempt_number} rounds"
            )

        candidate = self._registry.find_for_employee(failed.campaign_id, failed.trigger_employee_id)
        if not candidate:
            raise NotFoundError(f"Campaign {failed_campaign_id} has no candidate to carry over")

        start = max(failed.end_time + timedelta(days=failed.buffer_period_days), now)
        window = CampaignWindow(start=start, end=start + failed.window.duration)
        attempt = failed.attempt_number + 1
        new = NewCampaign(
            name=f"{failed.name} (round {attempt})",
            target_role=failed.target_role,
            sub_type=failed.sub_type,
            window=window,
            pass_threshold=failed.pass_threshold,
            max_modifications=failed.max_modifications,
            can_modify_votes=failed.can_modify_votes,
            buffer_period_days=failed.buffer_period_days,
            description=failed.description,
            show_live_results=failed.show_live_results,
            priority=failed.priority,
            created_by=SYSTEM_ACTOR,
            trigger_employee_id=failed.trigger_employee_id,
            trigger_period=failed.trigger_period,
            trigger_conditions=dict(failed.trigger_conditions, retry_of=failed.campaign_id),
            attempt_number=attempt,
            predecessor_campaign_id=failed.campaign_id,
        )
        successor = self._open_system_campaign(
            new,
            profile=candidate.profile,
            now=now,
        )
        if successor.predecessor_campaign_id != failed.campaign_id:
            raise InvalidTransition(
                f"Campaign {successor.campaign_id} is not the successor of campaign {failed.campaign_id}"
            )
        if successor.status == CampaignStatus.DRAFT and successor.start_time <= now:
            logger.warning(
                "Retry campaign %s waits as draft: employee %s already has an active %s campaign",
                successor.campaign_id,
                successor.trigger_employee_id,
                successor.target_role,
            )
        self._sync_punishment_round(successor)
        logger.info(
            "Retry campaign %s scheduled for %s after failed campaign %s",
            successor.campaign_id,
            successor.start_time,
            failed.campaign_id,
        )
        return successor.campaign_id

    def _sync_punishment_round(self, campaign: PromotionCampaign) -> None:
        if campaign.sub_type != CampaignSubType.AUTO_DEMOTION or campaign.trigger_period is None:
            return
        self._tracker.record_punishment_round(
            campaign.trigger_employee_id, campaign.trigger_period, campaign.attempt_number
        )

    def _announce_open(self, campaign: PromotionCampaign) -> None:
        safe_notify(
            self._notifier,
            CAMPAIGN_OPENED,
            {
                "campaign_id": campaign.campaign_id,
                "name": campaign.name,
                "sub_type": campaign.sub_type.value,
                "target_role": campaign.target_role,
                "start_time": campaign.start_time.strftime("%Y-%m-%d %H:%M:%S"),
                "end_time": campaign.end_time.strftime("%Y-%m-%d %H:%M:%S"),
            },
        )
