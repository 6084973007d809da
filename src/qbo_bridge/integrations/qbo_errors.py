"""Typed errors raised by the QBO session and gateway.

HTTP handlers map these to responses; nothing in this package swallows them
except the background refresh scheduler.
"""

from __future__ import annotations

from typing import Any


class QBOError(Exception):
    """Base class for all QBO bridge errors."""


class QBOConfigError(QBOError, ValueError):
    """Required configuration is missing or malformed."""


class QBONotConnectedError(QBOError):
    """No credential / realm is bound to the session."""


class QBOAuthorizationError(QBOError):
    """The authorization-code exchange (or its callback) was rejected."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload


class QBORefreshFailedError(QBOError):
    """The refresh grant was rejected or could not be sent."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload


class QBOProviderFaultError(QBOError):
    """QBO answered with a `Fault` envelope.

    `fault` keeps the provider object untouched for diagnostics.
    """

    def __init__(self, message: str, fault: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.fault = fault

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "fault": self.fault}


class QBOTransportError(QBOError):
    """Network or HTTP-layer failure without a provider fault envelope."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "status_code": self.status_code, "body": self.body}
