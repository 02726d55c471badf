"""
ClearView exception hierarchy.

All custom exceptions inherit from ClearViewException so callers can
catch a single base type when they want a broad safety net.
"""

from typing import Optional


class ClearViewException(Exception):
    """Base exception for all ClearView errors."""


class ConfigurationError(ClearViewException, ValueError):
    """Raised when configuration is invalid or cannot be loaded."""


class InvalidArgumentError(ClearViewException, ValueError):
    """Raised when a caller passes a missing or empty argument."""


class ClassifierError(ClearViewException):
    """Base for failures talking to the remote classifier.

    Every subclass is retryable under the transport's backoff policy.
    """


class RequestTimeoutError(ClassifierError):
    """Raised when a single attempt exceeds its time bound."""


class ProtocolError(ClassifierError):
    """Raised when the classifier returns a malformed or unknown payload."""


class TransportError(ClassifierError):
    """Raised on network-level failure or a non-2xx HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
