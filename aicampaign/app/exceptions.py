"""Custom exceptions for the campaign service."""


class CampaignServiceError(Exception):
    """Base class for campaign exceptions with HTTP status code.

    Every error carries a stable machine-readable ``code`` and a human
    message. The underlying exception, if any, is kept in ``cause`` and
    chained with ``raise ... from``.
    """
    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "Campaign service error",
        code: str | None = None,
        cause: BaseException | None = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.cause = cause
        super().__init__(message)

    def to_response(self) -> dict:
        """Convert to API response format."""
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
        }


class InvalidInputError(CampaignServiceError):
    """Raised for malformed caller arguments. Never retried.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    default_code = "INVALID_INPUT"


class NotFoundError(CampaignServiceError):
    """Raised when a campaign looked up by id does not exist.

    Maps to HTTP 404 Not Found.
    """
    status_code = 404
    default_code = "NOT_FOUND"


class CampaignNotFoundError(NotFoundError):
    """Raised when an operation requires an active campaign and none exists."""
    default_code = "CAMPAIGN_NOT_FOUND"


class InvalidStateError(CampaignServiceError):
    """Raised for an illegal campaign status transition.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    default_code = "INVALID_STATE"


class CampaignDepletedError(InvalidStateError):
    """Raised when trying to resume or pause a depleted campaign."""
    default_code = "CAMPAIGN_DEPLETED"


class CampaignEndedError(InvalidStateError):
    """Raised when trying to resume or pause an ended campaign."""
    default_code = "CAMPAIGN_ENDED"


class AtomicReserveFailedError(CampaignServiceError):
    """Raised when the atomic slot reservation could not be evaluated.

    The reservation path fails closed: a cache error is never reported as
    granted or denied.
    """
    default_code = "ATOMIC_RESERVE_FAILED"


class CampaignRepositoryError(CampaignServiceError):
    """Raised by the durable campaign store.

    The store's own code (``GET_ACTIVE_FAILED``, ``UPDATE_FAILED``, ...) is
    kept when the error is re-surfaced by the service layer.
    """
    default_code = "REPOSITORY_ERROR"

    def __init__(
        self,
        message: str = "Campaign store error",
        code: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, code, cause)
        if self.code == "NOT_FOUND":
            self.status_code = 404
        elif self.code == "INVALID_INPUT":
            self.status_code = 400
