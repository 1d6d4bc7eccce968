from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Mapping, Optional, Sequence, Union

from ..campaigns.model import PromotionCampaign
from ..campaigns.repository import CampaignRepository
from ..common.datetime_utils import now_local
from ..common.validators import require_non_empty
from ..core.enums import CandidateStatus, CampaignStatus
from ..core.exceptions import CampaignClosed, InvalidTransition, NotFoundError
from .model import CandidateProfile, PromotionCandidate, RankedCandidates, compute_tallies
from .repository import CandidateRepository

logger = logging.getLogger(__name__)

_TRANSITIONS = {
    CandidateStatus.APPROVED: (CandidateStatus.PENDING,),
    CandidateStatus.REJECTED: (CandidateStatus.PENDING, CandidateStatus.APPROVED),
    CandidateStatus.WITHDRAWN: (CandidateStatus.PENDING, CandidateStatus.APPROVED),
}


class CandidateRegistry:
    """Registers candidates under anonymous ids and stores their tallies.

    Campaign rows are only read here.
    """

    def __init__(self, candidates: CandidateRepository, campaigns: CampaignRepository):
        self._candidates = candidates
        self._campaigns = campaigns

    def _campaign(self, campaign_id: int) -> PromotionCampaign:
        campaign = self._campaigns.get(int(campaign_id))
        if not campaign:
            raise NotFoundError(f"Campaign {campaign_id} does not exist")
        return campaign

    @staticmethod
    def _require_open(campaign: PromotionCampaign) -> None:
        if not campaign.accepts_candidate_changes:
            raise CampaignClosed(f"Campaign {campaign.campaign_id} is {campaign.status.value}")

    # ----- registration -----

    def register_candidate(
        self,
        campaign_id: int,
        employee_id: int,
        profile: CandidateProfile,
        *,
        nominated_by: str,
        now: datetime | None = None,
    ) -> PromotionCandidate:
        """Register a nominee as pending; the returned anonymous id is all voters ever see."""
        now = now or now_local()
        campaign = self._campaign(campaign_id)
        self._require_open(campaign)
        if campaign.system_generated:
            raise InvalidTransition("Automatic campaigns only carry their system candidate")
        require_non_empty(profile.candidate_name, "Candidate name")
        if int(employee_id) <= 0:
            raise NotFoundError(f"Employee {employee_id} does not exist")

        candidate = self._candidates.create(
            campaign_id=campaign.campaign_id,
            employee_id=int(employee_id),
            profile=profile,
            status=CandidateStatus.PENDING,
            nominated_by=nominated_by,
            now=now,
        )
        logger.info("Candidate %s registered in campaign %s", candidate.anonymous_id, campaign.campaign_id)
        return candidate

    def ensure_candidate(
        self,
        campaign: PromotionCampaign,
        *,
        employee_id: int,
        profile: CandidateProfile,
        nominated_by: str,
        now: datetime,
    ) -> PromotionCandidate:
        """Create-or-fetch the approved system candidate of an automatic campaign."""
        self._require_open(campaign)
        candidate, created = self._candidates.create_or_get(
            campaign_id=campaign.campaign_id,
            employee_id=int(employee_id),
            profile=profile,
            status=CandidateStatus.APPROVED,
            nominated_by=nominated_by,
            now=now,
        )
        if created:
            logger.info("System candidate %s added to campaign %s", candidate.anonymous_id, campaign.campaign_id)
        return candidate

    # ----- status changes -----

    def approve(self, candidate_id: int, *, actor: str, now: datetime | None = None) -> PromotionCandidate:
        return self._decide(candidate_id, CandidateStatus.APPROVED, actor=actor, now=now)

    def reject(self, candidate_id: int, *, actor: str, now: datetime | None = None) -> PromotionCandidate:
        return self._decide(candidate_id, CandidateStatus.REJECTED, actor=actor, now=now)

    def withdraw(self, candidate_id: int, *, actor: str, now: datetime | None = None) -> PromotionCandidate:
        return self._decide(candidate_id, CandidateStatus.WITHDRAWN, actor=actor, now=now)

    def _decide(
        self,
        candidate_id: int,
        to_status: CandidateStatus,
        *,
        actor: str,
        now: datetime | None,
    ) -> PromotionCandidate:
        now = now or now_local()
        candidate = self.get(candidate_id)
        self._require_open(self._campaign(candidate.campaign_id))

        allowed = _TRANSITIONS[to_status]
        if candidate.status not in allowed:
            raise InvalidTransition(f"Candidate {candidate.anonymous_id} is {candidate.status.value}")
        if not self._candidates.set_status(
            candidate_id=candidate.candidate_id,
            from_statuses=allowed,
            to_status=to_status,
            decided_by=actor,
            now=now,
        ):
            raise InvalidTransition(f"Candidate {candidate.anonymous_id} changed state concurrently")
        logger.info("Candidate %s is now %s (by %s)", candidate.anonymous_id, to_status.value, actor)
        return self.get(candidate_id)

    def mark_elected(self, candidate_id: int, *, now: datetime) -> PromotionCandidate:
        """Terminal status for the winner; only valid while the campaign is closing."""
        candidate = self.get(candidate_id)
        if candidate.status == CandidateStatus.ELECTED:
            return candidate
        campaign = self._campaign(candidate.campaign_id)
        if campaign.status != CampaignStatus.CLOSING:
            raise InvalidTransition(f"Campaign {campaign.campaign_id} is not being resolved")
        if not self._candidates.set_status(
            candidate_id=candidate.candidate_id,
            from_statuses=(CandidateStatus.APPROVED,),
            to_status=CandidateStatus.ELECTED,
            decided_by=None,
            now=now,
        ):
            current = self.get(candidate_id)
            if current.status != CandidateStatus.ELECTED:
                raise InvalidTransition(f"Candidate {candidate.anonymous_id} is {current.status.value}")
            return current
        return self.get(candidate_id)

    # ----- tallies -----

    def recompute_tallies(
        self,
        campaign_id: int,
        *,
        agree_counts: Mapping[int, int],
        total_voters: int,
    ) -> RankedCandidates:
        candidates = self._candidates.list_for_campaign(int(campaign_id))
        tallies = compute_tallies(candidates, agree_counts=agree_counts, total_voters=int(total_voters))
        self._candidates.save_tallies(campaign_id=int(campaign_id), tallies=tallies)
        return self._ranked(campaign_id, candidates, tallies, total_voters)

    def preview_tallies(
        self,
        campaign_id: int,
        *,
        agree_counts: Mapping[int, int],
        total_voters: int,
    ) -> RankedCandidates:
        """Same ranking as recompute_tallies, without storing it."""
        candidates = self._candidates.list_for_campaign(int(campaign_id))
        tallies = compute_tallies(candidates, agree_counts=agree_counts, total_voters=int(total_voters))
        return self._ranked(campaign_id, candidates, tallies, total_voters)

    @staticmethod
    def _ranked(campaign_id, candidates, tallies, total_voters) -> RankedCandidates:
        by_id = {c.candidate_id: c for c in candidates}
        ranked = tuple(
            replace(
                by_id[t.candidate_id],
                vote_count=t.vote_count,
                vote_percentage=t.vote_percentage,
                ranking=t.ranking,
            )
            for t in tallies
        )
        return RankedCandidates(campaign_id=int(campaign_id), total_voters=int(total_voters), candidates=ranked)

    # ----- reads -----

    def get(self, candidate_id: int) -> PromotionCandidate:
        candidate = self._candidates.get(int(candidate_id))
        if not candidate:
            raise NotFoundError(f"Candidate {candidate_id} does not exist")
        return candidate

    def get_by_anonymous_id(self, campaign_id: int, anonymous_id: str) -> PromotionCandidate:
        candidate = self._candidates.get_by_anonymous_id(
            campaign_id=int(campaign_id), anonymous_id=(anonymous_id or "").strip().upper()
        )
        if not candidate:
            raise NotFoundError(f"Candidate {anonymous_id} is not on this ballot")
        return candidate

    def resolve_reference(self, campaign_id: int, ref: Union[int, str]) -> PromotionCandidate:
        """Accepts an anonymous id ("CANDIDATE_007") or a numeric candidate id."""
        if isinstance(ref, int) or (isinstance(ref, str) and ref.strip().isdigit()):
            candidate = self.get(int(ref))
            if candidate.campaign_id != int(campaign_id):
                raise NotFoundError(f"Candidate {ref} is not on this ballot")
            return candidate
        return self.get_by_anonymous_id(campaign_id, str(ref))

    def find_for_employee(self, campaign_id: int, employee_id: int) -> Optional[PromotionCandidate]:
        return self._candidates.find_for_employee(campaign_id=int(campaign_id), employee_id=int(employee_id))

    def list_for_campaign(self, campaign_id: int) -> Sequence[PromotionCandidate]:
        return self._candidates.list_for_campaign(int(campaign_id))

    def anonymous_view(self, campaign_id: int, *, include_tally: bool) -> list[dict]:
        return [
            c.to_anonymous_dict(include_tally=include_tally)
            for c in self.list_for_campaign(campaign_id)
            if c.status in {CandidateStatus.APPROVED, CandidateStatus.ELECTED}
        ]

    def full_view(self, campaign_id: int) -> list[dict]:
        return [c.to_full_dict() for c in self.list_for_campaign(campaign_id)]

