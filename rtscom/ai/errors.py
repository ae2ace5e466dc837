"""
Decision source error taxonomy
"""

from typing import Optional

STATUS_SERVICE_UNAVAILABLE = 503
STATUS_RATE_LIMITED = 429
STATUS_BAD_GATEWAY = 502


class DecisionSourceError(Exception):
    """
    A decision source call did not produce a usable answer

    Attributes:
        status: HTTP-style status code, or None when no status applies
    """

    def __init__(self, message: str, status: Optional[int] = STATUS_BAD_GATEWAY):
        super().__init__(message)
        self.status = status


class DecisionSourceUnavailable(DecisionSourceError):
    """The source is not configured or permanently rejected us (503)"""

    def __init__(self, message: str = "LLM not configured"):
        super().__init__(message, status=STATUS_SERVICE_UNAVAILABLE)


class RateLimitedError(DecisionSourceError):
    """The provider asked us to back off (429)"""

    def __init__(self, message: str, retry_after: float = 60.0):
        super().__init__(message, status=STATUS_RATE_LIMITED)
        self.retry_after = retry_after


class MalformedResponseError(DecisionSourceError):
    """The payload could not be parsed into directives or an action"""

    def __init__(self, message: str):
        super().__init__(message, status=None)
