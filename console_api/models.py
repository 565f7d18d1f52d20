"""Pydantic models for the console billing API.

Field names follow the Firestore documents and the web console's
TypeScript types (camelCase) so payloads pass through unchanged.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, StrictBool, StrictStr, field_validator


# =============================================================================
# INPUT VALIDATION PATTERNS
# =============================================================================

SITE_KEY_PATTERN = re.compile(r'^[A-Za-z0-9_\-]{1,128}$')
CHECKOUT_SESSION_ID_PATTERN = re.compile(r'^cs_[A-Za-z0-9_]{1,255}$')


# =============================================================================
# DOMAIN MODELS
# =============================================================================

class EntitlementStatus(str, Enum):
    """Derived access decision for a site's paid features."""
    SETUP_MODE = "setup_mode"
    NONE = "none"
    ACTIVE = "active"
    PENDING_CANCEL = "pending_cancel"
    CANCELED = "canceled"


class SubscriptionState(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    OTHER = "other"

    @classmethod
    def from_provider(cls, value: Any) -> "SubscriptionState":
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            # past_due, unpaid, paused, incomplete_expired, ...
            return cls.OTHER


class SiteBillingProfile(BaseModel):
    """Typed view of a siteSettings/{siteKey} document."""
    siteKey: str
    isFreePlan: StrictBool = False
    setupMode: StrictBool = False
    stripeCustomerId: Optional[StrictStr] = None
    ownerEmail: Optional[StrictStr] = None

    @field_validator('stripeCustomerId', 'ownerEmail')
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def hasCustomer(self) -> bool:
        return bool(self.stripeCustomerId)


class SubscriptionRecord(BaseModel):
    """Live snapshot of one Stripe subscription. Never persisted."""
    id: str
    status: SubscriptionState
    cancelAtPeriodEnd: bool = False
    customerId: Optional[str] = None

    @classmethod
    def from_stripe(cls, obj: Dict[str, Any]) -> "SubscriptionRecord":
        customer = obj.get("customer")
        if isinstance(customer, dict):
            customer = customer.get("id")
        return cls(
            id=str(obj.get("id") or ""),
            status=SubscriptionState.from_provider(obj.get("status")),
            cancelAtPeriodEnd=bool(obj.get("cancel_at_period_end")),
            customerId=str(customer) if customer else None,
        )


class CheckoutSession(BaseModel):
    """Stripe-hosted checkout flow, consumed once via redirect."""
    id: str
    url: Optional[str] = None
    customerId: Optional[str] = None
    customerEmail: Optional[str] = None
    siteKey: Optional[str] = None

    @classmethod
    def from_stripe(cls, obj: Dict[str, Any]) -> "CheckoutSession":
        customer = obj.get("customer")
        if isinstance(customer, dict):
            customer = customer.get("id")
        metadata = obj.get("metadata") if isinstance(obj.get("metadata"), dict) else {}
        return cls(
            id=str(obj.get("id") or ""),
            url=obj.get("url") or None,
            customerId=str(customer) if customer else None,
            customerEmail=obj.get("customer_email") or None,
            siteKey=metadata.get("siteKey") or None,
        )


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================

class CheckoutSessionRequest(BaseModel):
    """Body of POST /stripe/create-checkout-session."""
    siteKey: Optional[str] = None


class CheckoutSessionResponse(BaseModel):
    ok: bool
    siteKey: str
    url: Optional[str] = None
    sessionId: Optional[str] = None
    subscriptionId: Optional[str] = None
    alreadyActive: bool = False
    message: Optional[str] = None


class EntitlementStatusResponse(BaseModel):
    """Status lookups always carry a status; on failure it is 'none'."""
    ok: bool
    status: EntitlementStatus
    error: Optional[str] = None
    code: Optional[str] = None
    retryable: bool = False


class PlanFlagsResponse(BaseModel):
    siteKey: str
    isFreePlan: bool
    hasCustomer: bool


class ErrorResponse(BaseModel):
    """Standard error response format."""
    error: str
    code: str
    retryable: bool = False
    details: Optional[Dict[str, Any]] = None


class BillingConfigReport(BaseModel):
    """Operator diagnostics: what is configured, without revealing secrets."""
    ok: bool
    hasSecret: bool
    secretPrefix: Optional[str] = None
    hasPrice: bool
    pricePrefix: Optional[str] = None
    priceOk: bool = False
    appBaseUrl: str
    error: Optional[str] = None
