from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import AppealOutcome, AppealStatus, AppealType
from .model import NewAppeal, VoteAppeal


class AppealRepository(Protocol):
    def get(self, appeal_id: int) -> Optional[VoteAppeal]:
        raise NotImplementedError

    def create(self, new: NewAppeal) -> VoteAppeal:
        """Insert a pending appeal.

        Raises DuplicateAppeal when the appellant already filed this type against the campaign.
        """

        raise NotImplementedError

    def count_submitted_since(self, *, appellant_id: int, since: datetime) -> int:
        raise NotImplementedError

    def list(
        self,
        *,
        statuses: Optional[Sequence[AppealStatus]] = None,
        campaign_id: Optional[int] = None,
        appellant_id: Optional[int] = None,
        appeal_type: Optional[AppealType] = None,
        limit: int = 200,
    ) -> Sequence[VoteAppeal]:
        """Newest first."""

        raise NotImplementedError

    def set_status(
        self,
        *,
        appeal_id: int,
        from_statuses: Sequence[AppealStatus],
        to_status: AppealStatus,
        reviewed_by: Optional[str],
        review_notes: Optional[str],
        outcome: Optional[AppealOutcome],
        reviewed_at: Optional[datetime],
    ) -> bool:
        """Conditional status update; False when the appeal was not in a from-status."""

        raise NotImplementedError

    def count_by_status_and_type(
        self, *, since: Optional[datetime] = None, until: Optional[datetime] = None
    ) -> Sequence[tuple[AppealStatus, AppealType, int]]:
        raise NotImplementedError
