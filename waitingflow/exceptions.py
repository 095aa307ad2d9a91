"""
waitingflow error taxonomy.

ApplicationError subclasses carry an HTTP status, a stable error code and a
human readable reason so the API layer can render them without knowing the
module that raised them.
"""

from typing import Optional


class WaitingFlowError(Exception):
    """Base class for all waitingflow errors."""


class ApplicationError(WaitingFlowError):
    """Error surfaced to API clients as a JSON body with a status code."""

    http_status: int = 500
    code: str = "WF-0000"
    reason: str = "Internal error"

    def __init__(self, reason: Optional[str] = None):
        if reason is not None:
            self.reason = reason
        super().__init__(self.reason)

    def to_dict(self) -> dict:
        return {"code": self.code, "reason": self.reason}


class AlreadyRegisteredError(ApplicationError):
    """User is already waiting in the queue."""

    http_status = 409
    code = "UQ-0001"
    reason = "Already registered in queue"

    def __init__(self, queue: str, user_id: str, rank: int = -1):
        self.queue = queue
        self.user_id = user_id
        self.rank = rank
        super().__init__()

    def to_dict(self) -> dict:
        return {**super().to_dict(), "rank": self.rank}


class NotAdmittedError(ApplicationError):
    """User asked for an admission token before being admitted."""

    http_status = 403
    code = "UQ-0002"
    reason = "Not admitted yet"

    def __init__(self, queue: str, user_id: str):
        self.queue = queue
        self.user_id = user_id
        super().__init__()


class StoreError(ApplicationError):
    """A sorted-set store call failed."""

    http_status = 503
    code = "ST-0000"
    reason = "Queue store error"

    def __init__(self, operation: str, key: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        detail = f"{self.reason} during {operation} on {key}"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)


class StoreUnavailableError(StoreError):
    """Store refused or dropped the connection."""

    http_status = 503
    code = "ST-0001"
    reason = "Queue store unavailable"


class StoreTimeoutError(StoreError):
    """Store did not answer within the configured timeout."""

    http_status = 504
    code = "ST-0002"
    reason = "Queue store timed out"


class HashAlgorithmUnavailableError(WaitingFlowError):
    """The token hash algorithm is missing from this interpreter. Fatal at startup."""
