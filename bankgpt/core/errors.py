"""
Error taxonomy for the advisor.

Each error carries whether the caller may retry it and the HTTP status
a boundary layer should surface.
"""


class BankGPTError(Exception):
    """Base class for all advisor errors."""
    retryable = False
    status_code = 500


class InvalidRequest(BankGPTError):
    """Client input failed validation. Never retried."""
    status_code = 400


class RateLimited(InvalidRequest):
    """Caller exceeded the per-minute request allowance."""
    status_code = 429

    def __init__(self, message: str, retry_after: float):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamUnavailable(BankGPTError):
    """Completion endpoint could not be reached or timed out."""
    retryable = True
    status_code = 503


class UpstreamRejected(BankGPTError):
    """Completion endpoint refused the request (4xx)."""
    status_code = 502

    def __init__(self, message: str, upstream_status: int):
        super().__init__(message)
        self.upstream_status = upstream_status


class UpstreamError(BankGPTError):
    """Completion endpoint failed on its side (5xx)."""
    retryable = True
    status_code = 502

    def __init__(self, message: str, upstream_status: int):
        super().__init__(message)
        self.upstream_status = upstream_status


class MalformedResponse(BankGPTError):
    """Completion endpoint answered 2xx with a body we cannot use."""
    status_code = 502
