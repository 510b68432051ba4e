"""
LTI Launch Verification Errors

Exception hierarchy raised by message construction and signature
validation, and the classifier that folds any of them into the single
public ``LaunchError.BAD_REQUEST`` kind while keeping the internal cause
for logging.
"""

from __future__ import annotations

import datetime
from typing import Any, Dict, Final, Optional

from oauthlib.oauth1.rfc5849.errors import OAuth1Error

from ltilaunch.verification.result import FailureCause, LaunchError

# OAuth problem codes (oauth-problem-reporting extension)
PARAMETER_ABSENT: Final[str] = "parameter_absent"
PARAMETER_REJECTED: Final[str] = "parameter_rejected"
SIGNATURE_METHOD_REJECTED: Final[str] = "signature_method_rejected"
SIGNATURE_INVALID: Final[str] = "signature_invalid"
CONSUMER_KEY_UNKNOWN: Final[str] = "consumer_key_unknown"


class LaunchVerificationError(Exception):
    """Base exception for launch verification failures with structured context."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.timestamp = datetime.datetime.now(datetime.timezone.utc)


class MalformedURLError(LaunchVerificationError):
    """The launch URL cannot be used to build a signature base string."""
    pass


class TransportError(LaunchVerificationError):
    """Reading the request failed."""
    pass


class SignatureError(LaunchVerificationError):
    """OAuth protocol failure, including a signature mismatch."""

    def __init__(self, problem: str, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.problem = problem


def classify(exc: BaseException) -> FailureCause:
    """
    Map an exception raised during verification to its internal cause.

    Args:
        exc: Exception raised by a verification step

    Returns:
        FailureCause for logging and diagnostics
    """
    if isinstance(exc, MalformedURLError):
        return FailureCause.MALFORMED_URL
    if isinstance(exc, (TransportError, OSError)):
        return FailureCause.TRANSPORT
    if isinstance(exc, (SignatureError, OAuth1Error)):
        return FailureCause.OAUTH_PROTOCOL
    # oauthlib and urllib report unparseable URIs as ValueError
    if isinstance(exc, ValueError):
        return FailureCause.MALFORMED_URL
    return FailureCause.UNEXPECTED


def launch_error_for(cause: FailureCause) -> LaunchError:
    """Public error kind for a failure cause. Every cause maps to BAD_REQUEST."""
    return LaunchError.BAD_REQUEST


__all__ = [
    "LaunchVerificationError",
    "MalformedURLError",
    "TransportError",
    "SignatureError",
    "classify",
    "launch_error_for",
]
