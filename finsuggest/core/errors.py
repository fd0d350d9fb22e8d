"""
Exception hierarchy for the extraction pipeline.

Only programming errors (ValueError, TypeError) are meant to escape
ExtractionCascade.detect(); everything below is caught at the tier boundary.
"""

from typing import Optional


class FinSuggestError(Exception):
    """Base class for pipeline errors."""


class ProviderError(FinSuggestError):
    """AI provider call failed (network, HTTP, malformed response)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(ProviderError):
    """Provider answered with a rate-limit class response (HTTP 429)."""

    def __init__(self, message: str = "rate limited", retry_after: Optional[float] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class RetriesExhausted(FinSuggestError):
    """All retry attempts hit the rate limit."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(f"Gave up after {attempts} rate-limited attempts")
        self.attempts = attempts
        self.last_error = last_error


class DownloadError(FinSuggestError):
    """Attachment binary could not be fetched."""
