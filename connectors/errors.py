"""
Error taxonomy for the Shopify connector.

Every failure the core can produce is a ``ConnectorError`` tagged with an
``ErrorKind``.  The kind carries its HTTP status, so the route layer never
inspects message text to pick a response code.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    MISSING_PARAMETER = "MissingParameter"
    INVALID_FORMAT = "InvalidFormat"
    HMAC_VERIFICATION_FAILED = "HMACVerificationFailed"
    INVALID_STATE = "InvalidState"
    SSRF_REJECTED = "SSRFRejected"
    UPSTREAM_ERROR = "UpstreamError"
    UPSTREAM_TIMEOUT = "UpstreamTimeout"
    TOKEN_MISSING = "TokenMissing"
    UNAUTHENTICATED = "Unauthenticated"
    PROFILE_NOT_FOUND = "ProfileNotFound"
    STORE_UNAVAILABLE = "StoreUnavailable"
    CONFIGURATION_ERROR = "ConfigurationError"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.MISSING_PARAMETER: 400,
    ErrorKind.INVALID_FORMAT: 400,
    ErrorKind.HMAC_VERIFICATION_FAILED: 400,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.SSRF_REJECTED: 400,
    ErrorKind.UPSTREAM_ERROR: 500,
    ErrorKind.UPSTREAM_TIMEOUT: 504,
    ErrorKind.TOKEN_MISSING: 500,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.PROFILE_NOT_FOUND: 404,
    ErrorKind.STORE_UNAVAILABLE: 500,
    ErrorKind.CONFIGURATION_ERROR: 500,
}


class ConnectorError(Exception):
    """Base error raised by every connector component."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        http_status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.http_status = http_status or kind.http_status

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "kind": self.kind.value}


class UpstreamError(ConnectorError):
    """
    Shopify answered with a non-2xx status (or could not be reached).

    ``body`` is kept for operators (logs, tracebacks) and never reaches a
    response payload; only the upstream status does.
    """

    def __init__(
        self,
        status: Optional[int],
        body: str,
        message: str = "Shopify API request failed",
        *,
        http_status: Optional[int] = None,
    ) -> None:
        super().__init__(ErrorKind.UPSTREAM_ERROR, message, http_status=http_status)
        self.status = status
        self.body = body

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["upstreamStatus"] = self.status
        return payload


def redact(text: str, *secrets: Optional[str]) -> str:
    """Blank out every non-empty secret occurring in ``text``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, "[REDACTED]")
    return text
