from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import VoteDecision
from .model import Vote, VoteModification, VoteTally, VoteWriteResult


class VoteRepository(Protocol):
    def cast_or_update(
        self,
        *,
        campaign_id: int,
        voter_fingerprint: str,
        candidate_id: int,
        decision: VoteDecision,
        now: datetime,
    ) -> VoteWriteResult:
        """Upsert keyed on (campaign, fingerprint) in a single transaction.

        The campaign row is read under a shared lock and must be active with
        now inside its window; the modification limit and can_modify_votes
        come from that same locked row.
        """

        raise NotImplementedError

    def get_by_fingerprint(self, *, campaign_id: int, voter_fingerprint: str) -> Optional[Vote]:
        raise NotImplementedError

    def tally(self, campaign_id: int) -> VoteTally:
        raise NotImplementedError

    def list_modifications(self, campaign_id: int) -> Sequence[VoteModification]:
        raise NotImplementedError

    def integrity_counts(self, *, campaign_id: int, start_time: datetime, end_time: datetime) -> dict:
        """Keys: total_votes, duplicate_fingerprints, votes_outside_window, votes_for_foreign_candidates."""

        raise NotImplementedError
