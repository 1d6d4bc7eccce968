from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from ..campaigns.model import PromotionCampaign
from ..campaigns.service import CampaignManager
from ..common.datetime_utils import now_local
from ..common.validators import require_non_empty
from ..core.constants import (
    APPEAL_LIMIT_PERIOD_DAYS,
    APPEAL_MONTHLY_LIMIT,
    APPEAL_RESOLUTION_DAYS,
    APPEAL_WINDOW_DAYS,
)
from ..core.enums import AppealOutcome, AppealStatus, AppealType, CampaignStatus, CampaignSubType
from ..core.exceptions import (
    AppealNotAllowed,
    AuthorizationError,
    DomainError,
    DuplicateAppeal,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from ..notifications.notifier import APPEAL_REVIEWED, APPEAL_SUBMITTED, LoggingNotifier, Notifier, safe_notify
from .model import AppealEligibility, AppealStatistics, NewAppeal, VoteAppeal
from .repository import AppealRepository

logger = logging.getLogger(__name__)

_OPEN = (AppealStatus.PENDING, AppealStatus.UNDER_REVIEW)
_DECISIONS = {AppealStatus.APPROVED, AppealStatus.REJECTED}


def parse_appeal_type(value) -> AppealType:
    try:
        return AppealType(str(value or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown appeal type: {value}")


def parse_appeal_outcome(value) -> Optional[AppealOutcome]:
    if value is None or value == "":
        return None
    try:
        return AppealOutcome(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown appeal outcome: {value}")


class AppealService:
    """Appeals against closed campaigns.

    The service records and routes appeals; remedies such as a revote or a
    restored position are carried out by whoever receives the review event.
    """

    def __init__(
        self,
        appeals: AppealRepository,
        campaigns: CampaignManager,
        *,
        notifier: Optional[Notifier] = None,
    ):
        self._appeals = appeals
        self._campaigns = campaigns
        self._notifier = notifier or LoggingNotifier()

    def get(self, appeal_id: int) -> VoteAppeal:
        appeal = self._appeals.get(int(appeal_id))
        if not appeal:
            raise NotFoundError(f"Appeal {appeal_id} does not exist")
        return appeal

    # ----- filing -----

    def _refusal(
        self,
        campaign: PromotionCampaign,
        appellant_id: int,
        appeal_type: AppealType,
        now: datetime,
    ) -> Optional[DomainError]:
        if campaign.status != CampaignStatus.CLOSED:
            return AppealNotAllowed(f"Campaign {campaign.campaign_id} has not been closed")
        deadline = campaign.end_time + timedelta(days=APPEAL_WINDOW_DAYS)
        if now > deadline:
            return AppealNotAllowed(f"The appeal period ended at {deadline:%Y-%m-%d %H:%M:%S}")
        is_demotion = campaign.sub_type == CampaignSubType.AUTO_DEMOTION
        if appeal_type == AppealType.DEMOTION_RESULT and not is_demotion:
            return ValidationError("demotion_result appeals need a demotion campaign")
        if appeal_type == AppealType.PROMOTION_RESULT and is_demotion:
            return ValidationError("promotion_result appeals cannot target a demotion campaign")
        if self._appeals.list(campaign_id=campaign.campaign_id, appellant_id=appellant_id, appeal_type=appeal_type):
            return DuplicateAppeal(f"An {appeal_type.value} appeal was already filed against this campaign")
        recent = self._appeals.count_submitted_since(
            appellant_id=appellant_id, since=now - timedelta(days=APPEAL_LIMIT_PERIOD_DAYS)
        )
        if recent >= APPEAL_MONTHLY_LIMIT:
            return AppealNotAllowed(f"At most {APPEAL_MONTHLY_LIMIT} appeals per {APPEAL_LIMIT_PERIOD_DAYS} days")
        return None

    def check_eligibility(
        self,
        campaign_id: int,
        appellant_id: int,
        appeal_type: AppealType,
        *,
        now: datetime | None = None,
    ) -> AppealEligibility:
        now = now or now_local()
        campaign = self._campaigns.get(campaign_id)
        refusal = self._refusal(campaign, int(appellant_id), appeal_type, now)
        if refusal:
            return AppealEligibility(False, str(refusal))
        return AppealEligibility(True)

    def submit_appeal(
        self,
        campaign_id: int,
        appellant_id: int,
        appeal_type: AppealType,
        reason: str,
        *,
        target_employee_id: Optional[int] = None,
        evidence: Sequence[str] = (),
        supporting_employee_ids: Sequence[int] = (),
        now: datetime | None = None,
    ) -> VoteAppeal:
        now = now or now_local()
        reason = require_non_empty(reason, "Appeal reason")
        campaign = self._campaigns.get(campaign_id)
        refusal = self._refusal(campaign, int(appellant_id), appeal_type, now)
        if refusal:
            raise refusal

        if target_employee_id is None:
            target_employee_id = campaign.trigger_employee_id
        appeal = self._appeals.create(
            NewAppeal(
                campaign_id=campaign.campaign_id,
                appellant_id=int(appellant_id),
                appeal_type=appeal_type,
                reason=reason,
                submitted_at=now,
                appeal_deadline=campaign.end_time + timedelta(days=APPEAL_WINDOW_DAYS),
                resolution_due=now + timedelta(days=APPEAL_RESOLUTION_DAYS[appeal_type.value]),
                target_employee_id=target_employee_id,
                original_result=campaign.results,
                evidence=tuple(evidence),
                supporting_employee_ids=tuple(int(e) for e in supporting_employee_ids),
            )
        )
        logger.info("Appeal %s (%s) filed against campaign %s", appeal.appeal_id, appeal_type.value, campaign_id)
        safe_notify(
            self._notifier,
            APPEAL_SUBMITTED,
            {
                "appeal_id": appeal.appeal_id,
                "campaign_id": appeal.campaign_id,
                "appeal_type": appeal.appeal_type.value,
                "resolution_due": appeal.resolution_due.strftime("%Y-%m-%d %H:%M:%S"),
            },
        )
        return appeal

    # ----- review -----

    def start_review(self, appeal_id: int, *, actor: str) -> VoteAppeal:
        appeal = self.get(appeal_id)
        if appeal.status != AppealStatus.PENDING:
            raise InvalidTransition(f"Appeal {appeal_id} is {appeal.status.value}")
        self._move(appeal, (AppealStatus.PENDING,), AppealStatus.UNDER_REVIEW, actor=actor, reviewed_at=None)
        return self.get(appeal_id)

    def review(
        self,
        appeal_id: int,
        decision: AppealStatus,
        *,
        actor: str,
        notes: Optional[str] = None,
        outcome: Optional[AppealOutcome] = None,
        now: datetime | None = None,
    ) -> VoteAppeal:
        """Approve or reject an open appeal; an approval names its remedy."""
        now = now or now_local()
        if decision not in _DECISIONS:
            raise ValidationError("Decision must be approved or rejected")
        if decision == AppealStatus.APPROVED and outcome is None:
            raise ValidationError("An approved appeal needs an outcome")
        if decision == AppealStatus.REJECTED:
            outcome = AppealOutcome.MAINTAIN_RESULT

        appeal = self.get(appeal_id)
        if not appeal.status.is_open:
            raise InvalidTransition(f"Appeal {appeal_id} was already {appeal.status.value}")
        self._move(appeal, _OPEN, decision, actor=actor, reviewed_at=now, notes=notes, outcome=outcome)

        safe_notify(
            self._notifier,
            APPEAL_REVIEWED,
            {
                "appeal_id": appeal.appeal_id,
                "campaign_id": appeal.campaign_id,
                "appellant_id": appeal.appellant_id,
                "target_employee_id": appeal.target_employee_id,
                "status": decision.value,
                "outcome": outcome.value,
            },
        )
        return self.get(appeal_id)

    def withdraw(
        self,
        appeal_id: int,
        appellant_id: int,
        *,
        reason: Optional[str] = None,
    ) -> VoteAppeal:
        appeal = self.get(appeal_id)
        if appeal.appellant_id != int(appellant_id):
            raise AuthorizationError("Only the appellant can withdraw an appeal")
        if not appeal.can_be_withdrawn:
            raise InvalidTransition(f"Appeal {appeal_id} is {appeal.status.value}")
        notes = f"Withdrawn by appellant: {(reason or '').strip() or 'no reason given'}"
        self._move(appeal, _OPEN, AppealStatus.WITHDRAWN, actor=None, reviewed_at=None, notes=notes)
        return self.get(appeal_id)

    def _move(
        self,
        appeal: VoteAppeal,
        from_statuses: Sequence[AppealStatus],
        to_status: AppealStatus,
        *,
        actor: Optional[str],
        reviewed_at: Optional[datetime],
        notes: Optional[str] = None,
        outcome: Optional[AppealOutcome] = None,
    ) -> None:
        if not self._appeals.set_status(
            appeal_id=appeal.appeal_id,
            from_statuses=from_statuses,
            to_status=to_status,
            reviewed_by=actor,
            review_notes=notes,
            outcome=outcome,
            reviewed_at=reviewed_at,
        ):
            raise InvalidTransition(f"Appeal {appeal.appeal_id} changed state concurrently")
        logger.info("Appeal %s is now %s", appeal.appeal_id, to_status.value)

    # ----- listings -----

    def list_appeals(
        self,
        *,
        status: Optional[AppealStatus] = None,
        campaign_id: Optional[int] = None,
        appellant_id: Optional[int] = None,
    ) -> Sequence[VoteAppeal]:
        return self._appeals.list(
            statuses=[status] if status else None,
            campaign_id=int(campaign_id) if campaign_id is not None else None,
            appellant_id=int(appellant_id) if appellant_id is not None else None,
        )

    def list_pending(self) -> list[VoteAppeal]:
        """Open appeals, the ones due soonest first."""
        return sorted(self._appeals.list(statuses=_OPEN), key=lambda a: (a.resolution_due, a.appeal_id))

    def list_overdue(self, *, now: datetime | None = None) -> list[VoteAppeal]:
        now = now or now_local()
        return [a for a in self.list_pending() if a.is_overdue(now)]

    def statistics(
        self, *, since: Optional[datetime] = None, until: Optional[datetime] = None
    ) -> AppealStatistics:
        by_status: dict[str, int] = {}
        by_type: dict[str, int] = {}
        for status, appeal_type, count in self._appeals.count_by_status_and_type(since=since, until=until):
            by_status[status.value] = by_status.get(status.value, 0) + count
            by_type[appeal_type.value] = by_type.get(appeal_type.value, 0) + count
        return AppealStatistics(total=sum(by_status.values()), by_status=by_status, by_type=by_type)
