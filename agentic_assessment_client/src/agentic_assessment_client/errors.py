"""
Assessment Client Errors

Error taxonomy for the assessment session protocol client.
"""

from typing import Optional


class AssessmentClientError(Exception):
    """Base class for all assessment client errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InitializationError(AssessmentClientError):
    """Session lookup/open failed. Retry by calling initialize again."""


class StreamError(AssessmentClientError):
    """A turn stream ended with an error or closed without a terminal event."""


class TerminationError(AssessmentClientError):
    """The explicit end-assessment request failed. Session state is unchanged."""


class InvalidStateError(AssessmentClientError):
    """Programming-contract violation (e.g. appending to a frozen message)."""
