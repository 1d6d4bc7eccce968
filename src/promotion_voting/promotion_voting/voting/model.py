from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.enums import VoteDecision, VoteWriteOutcome


@dataclass(frozen=True)
class Vote:
    """One ledger row: the voter is only present as a keyed fingerprint."""

    vote_id: int
    campaign_id: int
    candidate_id: int
    voter_fingerprint: str
    decision: VoteDecision
    modification_count: int
    cast_at: datetime
    last_modified_at: Optional[datetime] = None


@dataclass(frozen=True)
class VoteWriteResult:
    outcome: VoteWriteOutcome
    vote: Optional[Vote] = None


@dataclass(frozen=True)
class VoteReceipt:
    campaign_id: int
    anonymous_id: str
    decision: VoteDecision
    modification_count: int
    modifications_remaining: int
    created: bool

    def to_dict(self) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "candidate": self.anonymous_id,
            "decision": self.decision.value,
            "modification_count": self.modification_count,
            "modifications_remaining": self.modifications_remaining,
            "created": self.created,
        }


@dataclass(frozen=True)
class VoteTally:
    """Ledger aggregate for one campaign.

    total_voters counts every ballot (abstentions included); total_votes
    counts the agree ballots that go to candidates.
    """

    campaign_id: int
    total_voters: int
    agree_counts: dict[int, int] = field(default_factory=dict)
    decision_counts: dict[str, int] = field(default_factory=dict)

    @property
    def total_votes(self) -> int:
        return sum(self.agree_counts.values())


@dataclass(frozen=True)
class VoteModification:
    modification_id: int
    vote_id: int
    campaign_id: int
    modification_number: int
    old_candidate_id: int
    new_candidate_id: int
    old_decision: VoteDecision
    new_decision: VoteDecision
    modified_at: datetime

    def to_dict(self) -> dict:
        return {
            "vote_id": self.vote_id,
            "modification_number": self.modification_number,
            "old_candidate_id": self.old_candidate_id,
            "new_candidate_id": self.new_candidate_id,
            "old_decision": self.old_decision.value,
            "new_decision": self.new_decision.value,
            "modified_at": self.modified_at.strftime("%Y-%m-%d %H:%M:%S"),
        }


@dataclass(frozen=True)
class IntegrityReport:
    campaign_id: int
    total_votes: int
    duplicate_fingerprints: int
    votes_outside_window: int
    votes_for_foreign_candidates: int

    @property
    def is_clean(self) -> bool:
        return not (self.duplicate_fingerprints or self.votes_outside_window or self.votes_for_foreign_candidates)

    def to_dict(self) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "total_votes": self.total_votes,
            "duplicate_fingerprints": self.duplicate_fingerprints,
            "votes_outside_window": self.votes_outside_window,
            "votes_for_foreign_candidates": self.votes_for_foreign_candidates,
            "is_clean": self.is_clean,
        }
