from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..campaigns.model import CampaignWindow, PromotionCampaign
from ..campaigns.service import CampaignManager
from ..common.datetime_utils import StatsPeriod, day_window, now_local
from ..core.constants import (
    AUTO_DEMOTION_PASS_THRESHOLD,
    AUTO_DEMOTION_WINDOW_DAYS,
    AUTO_PROMOTION_PASS_THRESHOLD,
    AUTO_PROMOTION_WINDOW_DAYS,
    NEW_EMPLOYEE_PROMOTION_DAYS,
    TRAINEE_POSITION,
)
from ..core.enums import CampaignSubType
from ..core.exceptions import DomainError, NotFoundError
from ..employees.directory import EmployeeDirectory
from ..notifications.notifier import STATISTICS_RESET, LoggingNotifier, Notifier, safe_notify
from ..results.service import ResultResolver
from ..statistics.model import AttendanceStatistics, LateEventOutcome
from ..statistics.service import AttendanceStatisticsTracker
from .policy import demotion_target, promotion_target

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LateEventHandling:
    outcome: LateEventOutcome
    campaign: Optional[PromotionCampaign] = None

    def to_dict(self) -> dict:
        stats = self.outcome.statistics
        return {
            "employee_id": stats.employee_id,
            "period": str(stats.period),
            "late_count": stats.late_count,
            "late_minutes_total": stats.late_minutes_total,
            "state": stats.state.value,
            "punishment_count": stats.punishment_count,
            "triggered": self.outcome.triggered,
            "campaign_id": self.campaign.campaign_id if self.campaign else None,
        }


class AutoVotingService:
    """Glue between attendance statistics and automatic campaigns, plus the scheduled sweeps."""

    def __init__(
        self,
        tracker: AttendanceStatisticsTracker,
        campaigns: CampaignManager,
        resolver: ResultResolver,
        directory: EmployeeDirectory,
        *,
        notifier: Optional[Notifier] = None,
        demotion_window_days: int = AUTO_DEMOTION_WINDOW_DAYS,
        demotion_pass_threshold: float = AUTO_DEMOTION_PASS_THRESHOLD,
        promotion_window_days: int = AUTO_PROMOTION_WINDOW_DAYS,
        promotion_pass_threshold: float = AUTO_PROMOTION_PASS_THRESHOLD,
        promotion_after_days: int = NEW_EMPLOYEE_PROMOTION_DAYS,
    ):
        self._tracker = tracker
        self._campaigns = campaigns
        self._resolver = resolver
        self._directory = directory
        self._notifier = notifier or LoggingNotifier()
        self._demotion_window_days = int(demotion_window_days)
        self._demotion_pass_threshold = float(demotion_pass_threshold)
        self._promotion_window_days = int(promotion_window_days)
        self._promotion_pass_threshold = float(promotion_pass_threshold)
        self._promotion_after_days = int(promotion_after_days)

    # ----- real-time path -----

    def handle_late_event(
        self,
        employee_id: int,
        *,
        event_date: date,
        minutes: int,
        reason: str = "",
        now: datetime | None = None,
    ) -> LateEventHandling:
        now = now or now_local()
        outcome = self._tracker.record_late_event(
            employee_id, event_date=event_date, minutes=minutes, reason=reason, now=now
        )
        campaign = None
        if outcome.triggered:
            campaign = self._open_demotion(outcome.statistics, now=now)
        return LateEventHandling(outcome=outcome, campaign=campaign)

    def _open_demotion(self, stats: AttendanceStatistics, *, now: datetime) -> Optional[PromotionCampaign]:
        profile = self._directory.get_profile(stats.employee_id)
        if not profile:
            raise NotFoundError(f"Employee {stats.employee_id} does not exist")
        target = demotion_target(profile.position)
        if target is None:
            logger.info(
                "Employee %s (%s) triggered punishment but has no lower position", profile.employee_id, profile.position
            )
            return None

        start, end = day_window(now.date(), self._demotion_window_days)
        rule = self._tracker.rule
        return self._campaigns.open_automatic_campaign(
            candidate=profile,
            sub_type=CampaignSubType.AUTO_DEMOTION,
            target_role=target,
            window=CampaignWindow(start=start, end=end),
            pass_threshold=self._demotion_pass_threshold,
            trigger_period=stats.period,
            trigger_conditions={
                "period": str(stats.period),
                "late_count": stats.late_count,
                "late_minutes_total": stats.late_minutes_total,
                "max_late_count": rule.max_late_count,
                "max_late_minutes": rule.max_late_minutes,
            },
            now=now,
        )

    # ----- scheduled sweeps -----

    def check_demotion_punishments(self, *, now: datetime | None = None) -> list[int]:
        """Catch rows over the threshold whose real-time trigger never fired."""
        now = now or now_local()
        period = StatsPeriod.of(now.date())
        opened: list[int] = []
        for stats in self._tracker.find_punishment_candidates(period):
            try:
                if not self._tracker.mark_punishment_triggered(stats.employee_id, period, now=now):
                    continue
                logger.info("Sweep fired punishment trigger for employee %s in %s", stats.employee_id, period)
                current = self._tracker.get(stats.employee_id, period)
                campaign = self._open_demotion(current, now=now)
            except DomainError as e:
                logger.warning("Demotion sweep skipped employee %s: %s", stats.employee_id, e)
                continue
            if campaign:
                opened.append(campaign.campaign_id)
        return opened

    def check_new_employee_promotions(self, *, now: datetime | None = None) -> list[int]:
        now = now or now_local()
        opened: list[int] = []
        for profile in self._directory.list_by_position(TRAINEE_POSITION):
            if profile.days_of_service(now.date()) < self._promotion_after_days:
                continue
            if self._campaigns.find_open_automatic(profile.employee_id, CampaignSubType.AUTO_PROMOTION):
                continue
            if self._campaigns.in_retry_buffer(profile.employee_id, CampaignSubType.AUTO_PROMOTION, now=now):
                continue
            target = promotion_target(profile.position)
            if target is None:
                continue

            start, end = day_window(now.date(), self._promotion_window_days)
            try:
                campaign = self._campaigns.open_automatic_campaign(
                    candidate=profile,
                    sub_type=CampaignSubType.AUTO_PROMOTION,
                    target_role=target,
                    window=CampaignWindow(start=start, end=end),
                    pass_threshold=self._promotion_pass_threshold,
                    trigger_conditions={
                        "days_of_service": profile.days_of_service(now.date()),
                        "hire_date": profile.hire_date.strftime("%Y-%m-%d"),
                    },
                    now=now,
                )
            except DomainError as e:
                logger.warning("Promotion sweep skipped employee %s: %s", profile.employee_id, e)
                continue
            opened.append(campaign.campaign_id)
        return opened

    def run_daily_checks(self, *, now: datetime | None = None) -> dict:
        now = now or now_local()
        summary = {
            "promotions_opened": self.check_new_employee_promotions(now=now),
            "demotions_opened": self.check_demotion_punishments(now=now),
        }
        logger.info("Daily checks finished: %s", summary)
        return summary

    def activate_due_campaigns(self, *, now: datetime | None = None) -> list[int]:
        return self._campaigns.activate_due_campaigns(now=now)

    def process_expired_campaigns(self, *, now: datetime | None = None) -> dict:
        return self._resolver.process_expired_campaigns(now=now).to_dict()

    def reset_monthly_statistics(self, period: Optional[StatsPeriod] = None, *, now: datetime | None = None) -> int:
        """Reset every row of a period (the current month by default)."""
        now = now or now_local()
        period = period or StatsPeriod.of(now.date())
        touched = self._tracker.reset_all_monthly_stats(period, now=now)
        safe_notify(self._notifier, STATISTICS_RESET, {"period": str(period), "rows": touched})
        return touched
