from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..campaigns.model import PromotionCampaign
from ..campaigns.service import CampaignManager
from ..candidates.model import RankedCandidates
from ..candidates.service import CandidateRegistry
from ..common.datetime_utils import now_local
from ..core.enums import CampaignOutcome, CampaignStatus, CampaignSubType, PositionChangeKind
from ..core.exceptions import (
    CampaignNotActive,
    CampaignNotEnded,
    DomainError,
    InvalidTransition,
    RetryLimitExceeded,
)
from ..notifications.notifier import (
    CAMPAIGN_CLOSED,
    ESCALATION_REQUIRED,
    POSITION_CHANGE_REQUESTED,
    LoggingNotifier,
    Notifier,
    safe_notify,
)
from ..voting.model import VoteTally
from ..voting.service import AnonymizedVotingLedger
from .model import CampaignResult, ExpiredCampaignsSummary, PositionChangeOrder

logger = logging.getLogger(__name__)


class ResultResolver:
    """Closes ended campaigns, applies the pass threshold and schedules retries.

    resolve() can be repeated safely: a campaign left in closing is picked up
    where it stopped, a closed campaign answers with its stored result.
    """

    def __init__(
        self,
        campaigns: CampaignManager,
        registry: CandidateRegistry,
        ledger: AnonymizedVotingLedger,
        *,
        notifier: Optional[Notifier] = None,
    ):
        self._campaigns = campaigns
        self._registry = registry
        self._ledger = ledger
        self._notifier = notifier or LoggingNotifier()

    def resolve(self, campaign_id: int, *, now: datetime | None = None) -> CampaignResult:
        now = now or now_local()
        campaign = self._campaigns.get(campaign_id)

        if campaign.status == CampaignStatus.CLOSED:
            return self._stored_result(campaign, now)
        if campaign.status in {CampaignStatus.DRAFT, CampaignStatus.CANCELLED}:
            raise CampaignNotActive(f"Campaign {campaign_id} is {campaign.status.value}")
        if campaign.status == CampaignStatus.ACTIVE:
            if not campaign.has_ended(now):
                raise CampaignNotEnded(f"Campaign {campaign_id} ends at {campaign.end_time}")
            if self._campaigns.begin_closing(campaign.campaign_id, now=now):
                logger.info("Campaign %s is closing", campaign.campaign_id)
            else:
                campaign = self._campaigns.get(campaign_id)
                if campaign.status == CampaignStatus.CLOSED:
                    return self._stored_result(campaign, now)
                if campaign.status != CampaignStatus.CLOSING:
                    raise InvalidTransition(f"Campaign {campaign_id} is {campaign.status.value}")

        return self._finish_closing(campaign.campaign_id, now)

    def _finish_closing(self, campaign_id: int, now: datetime) -> CampaignResult:
        campaign = self._campaigns.get(campaign_id)
        tally = self._ledger.tally(campaign.campaign_id)
        ranked = self._registry.recompute_tallies(
            campaign.campaign_id, agree_counts=tally.agree_counts, total_voters=tally.total_voters
        )
        result = self._evaluate(campaign, ranked, tally, now)
        if result.passed:
            self._registry.mark_elected(ranked.leader.candidate_id, now=now)

        won = self._campaigns.complete_closing(
            campaign.campaign_id,
            outcome=result.outcome,
            results=result.to_dict(),
            total_votes=result.total_votes,
            total_voters=result.total_voters,
            now=now,
        )
        campaign = self._campaigns.get(campaign_id)
        if not won:
            if campaign.status == CampaignStatus.CLOSED:
                return self._stored_result(campaign, now)
            raise InvalidTransition(f"Campaign {campaign_id} is {campaign.status.value}")

        logger.info(
            "Campaign %s closed: %s (%.2f%% of %s voters, threshold %.2f%%)",
            campaign.campaign_id,
            result.outcome.value,
            result.winning_percentage,
            result.total_voters,
            result.pass_threshold,
        )
        safe_notify(self._notifier, CAMPAIGN_CLOSED, result.to_dict())
        if result.position_change:
            safe_notify(self._notifier, POSITION_CHANGE_REQUESTED, result.position_change.to_dict())
        return self._follow_up(campaign, result, now, announce=True)

    def _evaluate(
        self,
        campaign: PromotionCampaign,
        ranked: RankedCandidates,
        tally: VoteTally,
        now: datetime,
    ) -> CampaignResult:
        leader = ranked.leader
        total_voters = tally.total_voters
        # No voters means no pass, whatever the threshold.
        if leader is None or total_voters <= 0:
            raw_pct = 0.0
        else:
            raw_pct = leader.vote_count / total_voters * 100
        # The threshold sees the unrounded share; only the reported value is rounded.
        passed = leader is not None and total_voters > 0 and raw_pct >= campaign.pass_threshold
        pct = round(raw_pct, 2)

        change = None
        if passed:
            kind = (
                PositionChangeKind.DEMOTION
                if campaign.sub_type == CampaignSubType.AUTO_DEMOTION
                else PositionChangeKind.PROMOTION
            )
            change = PositionChangeOrder(
                campaign_id=campaign.campaign_id,
                employee_id=leader.employee_id,
                kind=kind,
                from_position=leader.profile.current_position,
                to_position=campaign.target_role,
                decided_at=now,
            )

        return CampaignResult(
            campaign_id=campaign.campaign_id,
            outcome=CampaignOutcome.PASSED if passed else CampaignOutcome.FAILED,
            total_votes=tally.total_votes,
            total_voters=total_voters,
            winning_percentage=pct,
            pass_threshold=campaign.pass_threshold,
            resolved_at=now,
            leading_anonymous_id=leader.anonymous_id if leader else None,
            ranking=tuple(
                {
                    "anonymous_id": c.anonymous_id,
                    "vote_count": c.vote_count,
                    "vote_percentage": c.vote_percentage,
                    "ranking": c.ranking,
                }
                for c in ranked.candidates
            ),
            position_change=change,
        )

    def _stored_result(self, campaign: PromotionCampaign, now: datetime) -> CampaignResult:
        if not campaign.results:
            # Closed administratively without a tally: report it, change nothing.
            tally = self._ledger.tally(campaign.campaign_id)
            ranked = self._registry.preview_tallies(
                campaign.campaign_id, agree_counts=tally.agree_counts, total_voters=tally.total_voters
            )
            return self._evaluate(campaign, ranked, tally, campaign.closed_at or now)
        result = CampaignResult.from_dict(campaign.results)
        return self._follow_up(campaign, result, now, announce=False)

    def _follow_up(
        self,
        campaign: PromotionCampaign,
        result: CampaignResult,
        now: datetime,
        *,
        announce: bool,
    ) -> CampaignResult:
        if result.passed or not campaign.system_generated:
            return result
        try:
            retry_id = self._campaigns.schedule_retry(campaign.campaign_id, now=now)
        except RetryLimitExceeded as e:
            logger.warning("Campaign %s failed and needs escalation: %s", campaign.campaign_id, e)
            if announce:
                safe_notify(
                    self._notifier,
                    ESCALATION_REQUIRED,
                    {
                        "campaign_id": campaign.campaign_id,
                        "trigger_employee_id": campaign.trigger_employee_id,
                        "attempt_number": campaign.attempt_number,
                        "reason": str(e),
                    },
                )
            return result.with_retry(None, escalation_required=True)
        return result.with_retry(retry_id)

    def process_expired_campaigns(self, *, now: datetime | None = None) -> ExpiredCampaignsSummary:
        """Resolve every campaign past its end time (and any stuck in closing)."""
        now = now or now_local()
        resolved, passed, failed, retries, escalations = [], [], [], [], []
        errors: dict[int, str] = {}

        for campaign in self._campaigns.list_due_for_resolution(now=now):
            try:
                result = self.resolve(campaign.campaign_id, now=now)
            except DomainError as e:
                logger.warning("Could not resolve campaign %s: %s", campaign.campaign_id, e)
                errors[campaign.campaign_id] = str(e)
                continue
            resolved.append(campaign.campaign_id)
            (passed if result.passed else failed).append(campaign.campaign_id)
            if result.retry_campaign_id is not None:
                retries.append(result.retry_campaign_id)
            if result.escalation_required:
                escalations.append(campaign.campaign_id)

        if resolved or errors:
            logger.info("Expired campaigns processed: %s resolved, %s errors", len(resolved), len(errors))
        return ExpiredCampaignsSummary(
            resolved=tuple(resolved),
            passed=tuple(passed),
            failed=tuple(failed),
            retries=tuple(retries),
            escalations=tuple(escalations),
            errors=errors,
        )
