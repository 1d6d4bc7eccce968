class DomainError(Exception):
    """Base exception for business rule violations."""

    code = "DOMAIN_ERROR"


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    code = "VALIDATION_ERROR"


class NotFoundError(ValidationError):
    """Raised when a referenced campaign, candidate or statistics row does not exist."""

    code = "NOT_FOUND"


class IneligibleVoter(ValidationError):
    """Raised when a voter may not take part in a campaign."""

    code = "INELIGIBLE_VOTER"


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    code = "FORBIDDEN"


class StateConflict(DomainError):
    """Raised when the current state of a campaign, candidate or vote forbids the action."""

    code = "STATE_CONFLICT"


class CampaignNotActive(StateConflict):
    code = "CAMPAIGN_NOT_ACTIVE"


class CampaignNotEnded(StateConflict):
    code = "CAMPAIGN_NOT_ENDED"


class CampaignClosed(StateConflict):
    code = "CAMPAIGN_CLOSED"


class VoteLocked(StateConflict):
    code = "VOTE_LOCKED"


class DuplicateCandidate(StateConflict):
    code = "DUPLICATE_CANDIDATE"


class InvalidTransition(StateConflict):
    code = "INVALID_TRANSITION"


class AppealNotAllowed(StateConflict):
    """Raised when an appeal is filed too late, too often or against an open campaign."""

    code = "APPEAL_NOT_ALLOWED"


class DuplicateAppeal(StateConflict):
    code = "DUPLICATE_APPEAL"


class RetryLimitExceeded(DomainError):
    """Terminal: the retry cap was reached and an administrator has to escalate."""

    code = "RETRY_LIMIT_EXCEEDED"


class StorageError(DomainError):
    """Raised when persistence fails; the surrounding transaction has been rolled back."""

    code = "STORAGE_ERROR"
