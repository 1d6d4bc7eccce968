from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import CandidateStatus
from .model import CandidateProfile, CandidateTally, PromotionCandidate


class CandidateRepository(Protocol):
    def get(self, candidate_id: int) -> Optional[PromotionCandidate]:
        raise NotImplementedError

    def get_by_anonymous_id(self, *, campaign_id: int, anonymous_id: str) -> Optional[PromotionCandidate]:
        raise NotImplementedError

    def find_for_employee(self, *, campaign_id: int, employee_id: int) -> Optional[PromotionCandidate]:
        raise NotImplementedError

    def list_for_campaign(self, campaign_id: int) -> Sequence[PromotionCandidate]:
        """Candidates ordered by anonymous sequence (registration order)."""

        raise NotImplementedError

    def create(
        self,
        *,
        campaign_id: int,
        employee_id: int,
        profile: CandidateProfile,
        status: CandidateStatus,
        nominated_by: Optional[str],
        now: datetime,
    ) -> PromotionCandidate:
        """Insert and draw the next global anonymous sequence in the same transaction.

        Raises DuplicateCandidate when (campaign, employee) is already registered.
        """

        raise NotImplementedError

    def create_or_get(
        self,
        *,
        campaign_id: int,
        employee_id: int,
        profile: CandidateProfile,
        status: CandidateStatus,
        nominated_by: Optional[str],
        now: datetime,
    ) -> tuple[PromotionCandidate, bool]:
        raise NotImplementedError

    def set_status(
        self,
        *,
        candidate_id: int,
        from_statuses: Sequence[CandidateStatus],
        to_status: CandidateStatus,
        decided_by: Optional[str],
        now: datetime,
    ) -> bool:
        raise NotImplementedError

    def save_tallies(self, *, campaign_id: int, tallies: Sequence[CandidateTally]) -> None:
        raise NotImplementedError
