"""Error taxonomy shared by adapters and route handlers.

Adapters raise these; only the route layer turns them into HTTP responses.
Diagnostic attributes are always populated but only rendered when the caller
asks for them (see ``to_payload``).
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for errors with a human readable ``error`` message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def diagnostics(self) -> Dict[str, Any]:
        return {}

    def to_payload(self, debug: bool = False, **extra: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if debug:
            payload.update(
                {k: v for k, v in self.diagnostics().items() if v is not None}
            )
        payload.update(extra)
        return payload


class ValidationError(GatewayError):
    """Missing or malformed request parameters."""

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])

    def to_payload(self, debug: bool = False, **extra: Any) -> Dict[str, Any]:
        # Field problems are returned even when diagnostics are hidden.
        if self.errors:
            extra.setdefault("details", list(self.errors))
        return super().to_payload(debug, **extra)


class UpstreamError(GatewayError):
    """A third-party API answered with a non-2xx status or was unreachable."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Optional[str] = None,
        url: Optional[str] = None,
        retried: bool = False,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.url = url
        self.retried = retried

    def diagnostics(self) -> Dict[str, Any]:
        return {"status": self.status, "details": self.body, "url": self.url}


class InvalidResponseError(UpstreamError):
    """The upstream answered 2xx but the JSON lacks the expected fields."""


class RateLimitError(GatewayError):
    """Raised when a caller arrives before the minimum request gap elapsed."""

    def __init__(self, message: str, retry_after: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class InternalError(GatewayError):
    """Unexpected failure while handling a request."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause

    def diagnostics(self) -> Dict[str, Any]:
        if self.cause is None:
            return {}
        return {"message": str(self.cause)}


__all__ = [
    "GatewayError",
    "ValidationError",
    "UpstreamError",
    "InvalidResponseError",
    "RateLimitError",
    "InternalError",
]
