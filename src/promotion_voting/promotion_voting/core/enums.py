from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Caller role supplied by the external auth layer."""

    ADMIN = "admin"
    STAFF = "staff"


class StatisticsState(str, Enum):
    """Monthly punctuality aggregate lifecycle."""

    ACCUMULATING = "accumulating"
    TRIGGERED = "triggered"


class CampaignSubType(str, Enum):
    MANUAL = "manual"
    AUTO_PROMOTION = "auto_promotion"
    AUTO_DEMOTION = "auto_demotion"

    @property
    def is_automatic(self) -> bool:
        return self is not CampaignSubType.MANUAL


class CampaignStatus(str, Enum):
    """Campaign state machine: draft -> active -> closing -> closed, or -> cancelled."""

    DRAFT = "draft"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class CampaignOutcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"


class CandidateStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    ELECTED = "elected"


class VoteDecision(str, Enum):
    AGREE = "agree"
    DISAGREE = "disagree"
    ABSTAIN = "abstain"


class VoteWriteOutcome(str, Enum):
    """What the ledger storage did with a cast-or-update request."""

    CREATED = "created"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    LOCKED = "locked"
    CAMPAIGN_NOT_ACTIVE = "campaign_not_active"


class PositionChangeKind(str, Enum):
    PROMOTION = "promotion"
    DEMOTION = "demotion"


class AppealType(str, Enum):
    PROMOTION_RESULT = "promotion_result"
    DEMOTION_RESULT = "demotion_result"
    VOTE_MANIPULATION = "vote_manipulation"
    UNFAIR_PROCESS = "unfair_process"


class AppealStatus(str, Enum):
    """Appeal review: pending -> under_review -> approved | rejected, or withdrawn while open."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"

    @property
    def is_open(self) -> bool:
        return self in {AppealStatus.PENDING, AppealStatus.UNDER_REVIEW}


class AppealOutcome(str, Enum):
    MAINTAIN_RESULT = "maintain_result"
    REVOTE = "revote"
    DIRECT_OVERRIDE = "direct_override"
    POSITION_RESTORED = "position_restored"
