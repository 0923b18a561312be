"""Exception taxonomy for the sync engine."""


class OmiSyncError(Exception):
    """Base class for all sync engine errors."""


class ApiError(OmiSyncError):
    """A network failure or non-retryable HTTP error from the Omi API."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(ApiError):
    """HTTP 429 persisted beyond the retry budget."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class SyncCancelled(OmiSyncError):
    """The run was cancelled cooperatively. Not a failure."""


class SyncValidationError(OmiSyncError, ValueError):
    """A sync request was rejected before any network call."""


class SyncInProgressError(OmiSyncError):
    """Another run is already active on this coordinator."""
