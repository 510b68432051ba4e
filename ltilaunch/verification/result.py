"""
LTI Launch Verification Results

Result types shared by the verification pipeline: a tagged-union ``Result``
returned by each pipeline step, the public ``LaunchError`` taxonomy, the
internal ``FailureCause`` diagnostics and the immutable
``LtiVerificationResult`` handed back to callers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

from ltilaunch.launch.records import LtiLaunchResult

T = TypeVar('T')
E = TypeVar('E')


class LaunchError(Enum):
    """Failure kinds observable at the verification boundary."""

    BAD_REQUEST = "bad_request"


class FailureCause(Enum):
    """Internal cause of a rejected launch, kept for diagnostics only."""

    MALFORMED_URL = "malformed_url"
    TRANSPORT = "transport"
    OAUTH_PROTOCOL = "oauth_protocol"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class Result(Generic[T, E]):
    """
    Result of a single pipeline step: either a value or an error.

    The orchestrator stops at the first failed step.
    """

    _value: Optional[T] = None
    _error: Optional[E] = None

    @classmethod
    def success(cls, value: T) -> Result[T, E]:
        """Create a successful result."""
        return cls(_value=value)

    @classmethod
    def failure(cls, error: E) -> Result[T, E]:
        """Create a failed result."""
        return cls(_error=error)

    @property
    def is_success(self) -> bool:
        return self._error is None

    @property
    def is_failure(self) -> bool:
        return self._error is not None

    @property
    def error(self) -> Optional[E]:
        return self._error

    def get_or_raise(self) -> T:
        """Extract the value, raising the contained error if it is an exception."""
        if self.is_success:
            return self._value
        if isinstance(self._error, BaseException):
            raise self._error
        raise ValueError(f"Result holds a failure: {self._error!r}")


@dataclass(frozen=True)
class StepFailure:
    """Failure of one verification step, with its classified cause."""

    stage: str
    cause: FailureCause
    exception: BaseException

    @property
    def description(self) -> str:
        return f"{self.stage} failed: {type(self.exception).__name__}: {self.exception}"


@dataclass(frozen=True)
class LtiVerificationResult:
    """
    Outcome of verifying one LTI launch request.

    Exactly one of ``error`` and ``launch_result`` is set, and ``success``
    says which. ``cause`` and ``message`` accompany a failure and only
    exist to help operators diagnose rejected launches; callers should
    branch on ``success`` (or ``error``) alone.
    """

    success: bool
    error: Optional[LaunchError] = None
    launch_result: Optional[LtiLaunchResult] = None
    cause: Optional[FailureCause] = None
    message: Optional[str] = None

    def __post_init__(self):
        if self.success:
            if self.error is not None or self.launch_result is None:
                raise ValueError("Successful verification requires a launch result and no error")
            if self.cause is not None or self.message is not None:
                raise ValueError("Successful verification cannot carry a failure cause or message")
        else:
            if self.error is None or self.launch_result is not None:
                raise ValueError("Failed verification requires an error and no launch result")

    @classmethod
    def accepted(cls, launch_result: LtiLaunchResult) -> LtiVerificationResult:
        return cls(success=True, launch_result=launch_result)

    @classmethod
    def rejected(cls,
                 error: LaunchError,
                 cause: Optional[FailureCause] = None,
                 message: Optional[str] = None) -> LtiVerificationResult:
        return cls(success=False, error=error, cause=cause, message=message)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation of the result."""
        return {
            "success": self.success,
            "error": self.error.name if self.error else None,
            "cause": self.cause.value if self.cause else None,
            "message": self.message,
            "launch_result": self.launch_result.to_dict() if self.launch_result else None,
        }


__all__ = [
    "LaunchError",
    "FailureCause",
    "Result",
    "StepFailure",
    "LtiVerificationResult",
]
