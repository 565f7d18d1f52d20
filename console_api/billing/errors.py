"""Billing error taxonomy.

Every failure the billing components can report is a BillingError carrying
the HTTP status, a stable machine code and whether the user may retry.
Routers turn these into JSON error bodies; nothing crosses the HTTP
boundary as a raw exception.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BillingError(Exception):
    status_code = 500
    code = "BILLING_ERROR"
    retryable = False

    def __init__(
        self,
        error: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(error)
        self.error = error
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.error,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidRequest(BillingError):
    status_code = 400
    code = "INVALID_REQUEST"


class NotFound(BillingError):
    status_code = 404
    code = "SITE_NOT_FOUND"


class ServerMisconfigured(BillingError):
    """Operator-fatal: missing keys or prices. Never shown verbatim to users."""

    status_code = 500
    code = "SERVER_MISCONFIGURED"


class ProfileDecodeError(ServerMisconfigured):
    code = "PROFILE_DECODE_FAILED"


class IdentityMissing(BillingError):
    status_code = 400
    code = "IDENTITY_MISSING"


class ProviderError(BillingError):
    status_code = 502
    code = "STRIPE_API_HTTP_ERROR"
    retryable = True


class NetworkError(BillingError):
    status_code = 502
    code = "STRIPE_API_UNREACHABLE"
    retryable = True
