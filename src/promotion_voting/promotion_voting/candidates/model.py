from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Mapping, Optional, Sequence

from ..core.constants import ANONYMOUS_ID_PREFIX
from ..core.enums import CandidateStatus
from ..employees.model import EmployeeProfile

# Only these candidates take part in ranking.
RANKED_STATUSES = frozenset({CandidateStatus.APPROVED, CandidateStatus.ELECTED})


def format_anonymous_id(seq: int) -> str:
    return f"{ANONYMOUS_ID_PREFIX}{int(seq):03d}"


@dataclass(frozen=True)
class CandidateProfile:
    """Profile fields shown on the ballot."""

    candidate_name: str
    current_position: str
    current_store: Optional[str] = None
    years_of_service: Optional[float] = None
    statement: Optional[str] = None
    qualifications: tuple[str, ...] = ()
    achievements: tuple[str, ...] = ()

    @classmethod
    def from_employee(
        cls,
        employee: EmployeeProfile,
        *,
        today: date,
        statement: Optional[str] = None,
        qualifications: Sequence[str] = (),
        achievements: Sequence[str] = (),
    ) -> "CandidateProfile":
        return cls(
            candidate_name=employee.full_name,
            current_position=employee.position,
            current_store=employee.store,
            years_of_service=employee.years_of_service(today),
            statement=statement,
            qualifications=tuple(qualifications),
            achievements=tuple(achievements),
        )


@dataclass(frozen=True)
class PromotionCandidate:
    candidate_id: int
    campaign_id: int
    employee_id: int
    anonymous_seq: int
    anonymous_id: str
    profile: CandidateProfile
    status: CandidateStatus
    nominated_by: Optional[str] = None
    display_order: int = 1
    vote_count: int = 0
    vote_percentage: float = 0.0
    ranking: Optional[int] = None
    created_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None

    @property
    def statement(self) -> Optional[str]:
        return self.profile.statement

    @property
    def is_ranked(self) -> bool:
        return self.status in RANKED_STATUSES

    def to_anonymous_dict(self, *, include_tally: bool) -> dict:
        """Voter-facing view: no employee id, no name."""
        out = {
            "anonymous_id": self.anonymous_id,
            "position": self.profile.current_position,
            "years_of_service": self.profile.years_of_service,
            "statement": self.profile.statement or "",
            "qualifications": list(self.profile.qualifications),
            "achievements": list(self.profile.achievements),
            "status": self.status.value,
        }
        if include_tally:
            out.update({"vote_count": self.vote_count, "vote_percentage": self.vote_percentage, "ranking": self.ranking})
        return out

    def to_full_dict(self) -> dict:
        out = self.to_anonymous_dict(include_tally=True)
        out.update(
            {
                "candidate_id": self.candidate_id,
                "campaign_id": self.campaign_id,
                "employee_id": self.employee_id,
                "candidate_name": self.profile.candidate_name,
                "current_store": self.profile.current_store,
                "nominated_by": self.nominated_by,
                "display_order": self.display_order,
                "decided_by": self.decided_by,
                "decided_at": self.decided_at.strftime("%Y-%m-%d %H:%M:%S") if self.decided_at else None,
            }
        )
        return out


@dataclass(frozen=True)
class CandidateTally:
    candidate_id: int
    vote_count: int
    vote_percentage: float
    ranking: Optional[int]


@dataclass(frozen=True)
class RankedCandidates:
    campaign_id: int
    total_voters: int
    candidates: tuple[PromotionCandidate, ...] = field(default_factory=tuple)

    @property
    def leader(self) -> Optional[PromotionCandidate]:
        ranked = [c for c in self.candidates if c.ranking is not None]
        return ranked[0] if ranked else None


def compute_tallies(
    candidates: Sequence[PromotionCandidate],
    *,
    agree_counts: Mapping[int, int],
    total_voters: int,
) -> list[CandidateTally]:
    """Vote counts, percentages of total voters and rankings.

    Ranking: more votes first, ties go to the earlier anonymous id. Candidates
    outside the ballot keep their counts but get no rank.
    """
    ordered = sorted(candidates, key=lambda c: (-int(agree_counts.get(c.candidate_id, 0)), c.anonymous_seq))
    tallies: list[CandidateTally] = []
    rank = 0
    for c in ordered:
        count = int(agree_counts.get(c.candidate_id, 0))
        pct = round(count / total_voters * 100, 2) if total_voters > 0 else 0.0
        ranking = None
        if c.is_ranked:
            rank += 1
            ranking = rank
        tallies.append(CandidateTally(candidate_id=c.candidate_id, vote_count=count, vote_percentage=pct, ranking=ranking))
    return tallies
