"""
Error taxonomy for submission and health checks
"""
from typing import Optional


class VisibilityError(Exception):
    """Base class for all errors raised by this package"""


class ValidationError(VisibilityError):
    """Input rejected before any network call (empty or malformed URL batch, missing key)"""


class SubmissionError(VisibilityError):
    """A single submission request failed"""

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(SubmissionError):
    """HTTP 429 from an engine; retried after Retry-After seconds"""

    retryable = True

    def __init__(self, message: str, retry_after: float = 60, status_code: int = 429):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class TransientServerError(SubmissionError):
    """HTTP 5xx or 408; retried with incremental backoff"""

    retryable = True


class NetworkError(SubmissionError):
    """Timeout or connection failure; retried like a server error"""

    retryable = True


class PermanentClientError(SubmissionError):
    """Any other non-2xx status; never retried"""


class SubmissionCancelled(SubmissionError):
    """The caller's cancel signal or global deadline interrupted the request"""


class ProbeError(VisibilityError):
    """A health probe could not be completed; the check is inconclusive"""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Probe failed for {url}: {reason}")
        self.url = url
        self.reason = reason
