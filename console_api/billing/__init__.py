"""Billing entitlement reconciliation.

- status: derive a site's EntitlementStatus from its profile and live subscriptions
- checkout: issue Stripe checkout sessions (no-op when already active)
- verify: resolve a checkout redirect session id to a status
- profile_store: typed reads of siteSettings/{siteKey}
- stripe_client: the Stripe REST calls the above rely on
"""

from .checkout import CheckoutResult, CheckoutSessionIssuer
from .errors import (
    BillingError,
    IdentityMissing,
    InvalidRequest,
    NetworkError,
    NotFound,
    ProfileDecodeError,
    ProviderError,
    ServerMisconfigured,
)
from .profile_store import SiteProfileStore
from .status import EntitlementLookup, StatusDeriver, classify_subscriptions, derive_status
from .stripe_client import StripeClient
from .verify import SessionVerifier

__all__ = [
    'BillingError',
    'CheckoutResult',
    'CheckoutSessionIssuer',
    'EntitlementLookup',
    'IdentityMissing',
    'InvalidRequest',
    'NetworkError',
    'NotFound',
    'ProfileDecodeError',
    'ProviderError',
    'ServerMisconfigured',
    'SessionVerifier',
    'SiteProfileStore',
    'StatusDeriver',
    'StripeClient',
    'classify_subscriptions',
    'derive_status',
]
