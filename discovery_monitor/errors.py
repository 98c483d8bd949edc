"""Error codes and exceptions raised by the discovery monitor."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    CALLER_ERROR = "CALLER_ERROR"
    SUBMISSION_ERROR = "SUBMISSION_ERROR"
    SUBSCRIPTION_ERROR = "SUBSCRIPTION_ERROR"
    RELEASE_ERROR = "RELEASE_ERROR"
    STATE_ERROR = "STATE_ERROR"


class DiscoveryMonitorError(RuntimeError):
    """Exception carrying a structured error code."""

    code: ErrorCode = ErrorCode.STATE_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.context = context or {}

    def __str__(self) -> str:  # pragma: no cover - formatting sugar
        base = super().__str__()
        return f"[{self.code.value}] {base}" if base else self.code.value


class InvalidRequestError(DiscoveryMonitorError, ValueError):
    """Rejected locally, before any network call."""

    code = ErrorCode.CALLER_ERROR


class SubmissionError(DiscoveryMonitorError):
    """The job-submission service refused or failed a request."""

    code = ErrorCode.SUBMISSION_ERROR

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kw: Any) -> None:
        super().__init__(message, **kw)
        self.status_code = status_code


class SubscriptionError(DiscoveryMonitorError):
    code = ErrorCode.SUBSCRIPTION_ERROR


class SubscriptionSetClosedError(SubscriptionError):
    """A subscription arrived after its owning set was released."""


class SubscriptionReleaseError(DiscoveryMonitorError):
    """One or more handles failed to release; every release was still attempted."""

    code = ErrorCode.RELEASE_ERROR

    def __init__(self, errors: List[BaseException], **kw: Any) -> None:
        names = ", ".join(type(e).__name__ for e in errors)
        super().__init__(f"{len(errors)} subscription(s) failed to release: {names}", **kw)
        self.errors = list(errors)
