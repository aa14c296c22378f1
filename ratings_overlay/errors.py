"""Exceptions raised while resolving ratings."""

from typing import Optional


class RatingsOverlayError(Exception):
    """Base class for ratings overlay errors."""


class UpstreamError(RatingsOverlayError):
    """The upstream rating API could not answer the request."""


class UpstreamUnavailable(UpstreamError):
    """Transport failure: network error or non-2xx HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamRejected(UpstreamError):
    """API-level failure, e.g. ``{"Response": "False", "Error": "Movie not found!"}``."""

    def __init__(self, message: str, api_error: Optional[str] = None):
        super().__init__(message)
        self.api_error = api_error


class ResolutionFailed(RatingsOverlayError):
    """All upstream attempts for a key were exhausted."""

    def __init__(self, key: str, attempts: int, cause: Optional[BaseException] = None):
        super().__init__(f"Rating resolution failed after {attempts} attempts for {key!r}: {cause}")
        self.key = key
        self.attempts = attempts
        self.cause = cause
