"""
Errors raised at the network boundary.

Everything below the boundary (timezone, transform, timeline) degrades
instead of raising; these are the only failures a user ever sees.
"""

from typing import Optional


class FatigueApiError(Exception):
    """Base class for analysis-service failures"""


class UpstreamError(FatigueApiError):
    """Service answered with a non-2xx status"""

    def __init__(self, status_code: int, detail: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail or f"HTTP {status_code}")


class ServiceUnavailableError(FatigueApiError):
    """Service could not be reached (DNS, refused, timeout)"""


class InvalidPayloadError(FatigueApiError):
    """Service answered 2xx but the body doesn't match the expected shape"""
