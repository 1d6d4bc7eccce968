from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence, Union

from ..campaigns.service import CampaignManager
from ..candidates.service import CandidateRegistry
from ..common.datetime_utils import now_local
from ..core.enums import CandidateStatus, CampaignStatus, VoteDecision, VoteWriteOutcome
from ..core.exceptions import CampaignNotActive, IneligibleVoter, ValidationError, VoteLocked
from .fingerprint import VoterFingerprinter
from .model import IntegrityReport, VoteModification, VoteReceipt, VoteTally
from .repository import VoteRepository

logger = logging.getLogger(__name__)


def parse_decision(value: Union[str, VoteDecision, None]) -> VoteDecision:
    if value is None or value == "":
        return VoteDecision.AGREE
    try:
        return VoteDecision(str(value.value if isinstance(value, VoteDecision) else value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown vote decision: {value}")


class AnonymizedVotingLedger:
    """One ballot per voter per campaign, revisable a bounded number of times.

    Voter identities never reach storage; every lookup goes through the fingerprint.
    """

    def __init__(
        self,
        votes: VoteRepository,
        campaigns: CampaignManager,
        registry: CandidateRegistry,
        fingerprinter: VoterFingerprinter,
    ):
        self._votes = votes
        self._campaigns = campaigns
        self._registry = registry
        self._fingerprinter = fingerprinter

    def cast_or_update_vote(
        self,
        campaign_id: int,
        voter_identity: int | str,
        candidate: Union[int, str],
        *,
        decision: Union[str, VoteDecision, None] = None,
        now: datetime | None = None,
    ) -> VoteReceipt:
        now = now or now_local()
        campaign = self._campaigns.get(campaign_id)
        if not campaign.accepts_votes_at(now):
            raise CampaignNotActive(f"Voting is closed for campaign {campaign.campaign_id}")

        chosen = self._registry.resolve_reference(campaign.campaign_id, candidate)
        if chosen.status != CandidateStatus.APPROVED:
            raise ValidationError(f"Candidate {chosen.anonymous_id} is not on the ballot")
        if campaign.system_generated and str(campaign.trigger_employee_id) == str(voter_identity):
            raise IneligibleVoter("You cannot vote on your own automatic campaign")
        parsed = parse_decision(decision)

        result = self._votes.cast_or_update(
            campaign_id=campaign.campaign_id,
            voter_fingerprint=self._fingerprinter.fingerprint(voter_identity, campaign.campaign_id),
            candidate_id=chosen.candidate_id,
            decision=parsed,
            now=now,
        )

        if result.outcome == VoteWriteOutcome.CAMPAIGN_NOT_ACTIVE:
            raise CampaignNotActive(f"Voting is closed for campaign {campaign.campaign_id}")
        if result.outcome == VoteWriteOutcome.LOCKED:
            if not campaign.can_modify_votes:
                raise VoteLocked("Votes in this campaign cannot be changed")
            raise VoteLocked(f"Vote already changed {campaign.max_modifications} times")

        vote = result.vote
        if result.outcome == VoteWriteOutcome.MODIFIED:
            logger.info("Vote revised in campaign %s (revision %s)", campaign.campaign_id, vote.modification_count)
        elif result.outcome == VoteWriteOutcome.CREATED:
            logger.info("Vote cast in campaign %s", campaign.campaign_id)

        return VoteReceipt(
            campaign_id=campaign.campaign_id,
            anonymous_id=chosen.anonymous_id,
            decision=vote.decision,
            modification_count=vote.modification_count,
            modifications_remaining=self._remaining(campaign, vote.modification_count),
            created=result.outcome == VoteWriteOutcome.CREATED,
        )

    @staticmethod
    def _remaining(campaign, modification_count: int) -> int:
        if not campaign.can_modify_votes:
            return 0
        return max(0, campaign.max_modifications - modification_count)

    def get_my_vote(self, campaign_id: int, voter_identity: int | str) -> Optional[VoteReceipt]:
        campaign = self._campaigns.get(campaign_id)
        vote = self._votes.get_by_fingerprint(
            campaign_id=campaign.campaign_id,
            voter_fingerprint=self._fingerprinter.fingerprint(voter_identity, campaign.campaign_id),
        )
        if not vote:
            return None
        chosen = self._registry.get(vote.candidate_id)
        return VoteReceipt(
            campaign_id=campaign.campaign_id,
            anonymous_id=chosen.anonymous_id,
            decision=vote.decision,
            modification_count=vote.modification_count,
            modifications_remaining=(
                self._remaining(campaign, vote.modification_count) if campaign.status == CampaignStatus.ACTIVE else 0
            ),
            created=False,
        )

    def tally(self, campaign_id: int) -> VoteTally:
        return self._votes.tally(int(campaign_id))

    def modification_history(self, campaign_id: int) -> Sequence[VoteModification]:
        self._campaigns.get(campaign_id)
        return self._votes.list_modifications(int(campaign_id))

    def verify_integrity(self, campaign_id: int) -> IntegrityReport:
        campaign = self._campaigns.get(campaign_id)
        counts = self._votes.integrity_counts(
            campaign_id=campaign.campaign_id, start_time=campaign.start_time, end_time=campaign.end_time
        )
        report = IntegrityReport(
            campaign_id=campaign.campaign_id,
            total_votes=int(counts.get("total_votes", 0)),
            duplicate_fingerprints=int(counts.get("duplicate_fingerprints", 0)),
            votes_outside_window=int(counts.get("votes_outside_window", 0)),
            votes_for_foreign_candidates=int(counts.get("votes_for_foreign_candidates", 0)),
        )
        if not report.is_clean:
            logger.warning("Ledger integrity problems in campaign %s: %s", campaign.campaign_id, report.to_dict())
        return report

