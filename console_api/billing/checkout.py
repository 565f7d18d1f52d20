"""Checkout session issuing.

List-then-create runs fresh on every call; the active check is never
cached. Two near-simultaneous calls can still both create a session; that
race is accepted since checkout is a human-paced, per-site action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import BillingConfig
from .errors import IdentityMissing, InvalidRequest, ServerMisconfigured
from .profile_store import SiteProfileStore, validate_site_key
from .status import find_active_subscription
from .stripe_client import StripeClient

logger = logging.getLogger("console_api.billing.checkout")


@dataclass(frozen=True)
class CheckoutResult:
    site_key: str
    url: Optional[str] = None
    session_id: Optional[str] = None
    subscription_id: Optional[str] = None
    already_active: bool = False


class CheckoutSessionIssuer:

    def __init__(self, config: BillingConfig, profiles: SiteProfileStore, stripe: StripeClient):
        self.config = config
        self.profiles = profiles
        self.stripe = stripe

    def issue(self, site_key: Optional[str]) -> CheckoutResult:
        site_key = validate_site_key(site_key)
        profile = self.profiles.get(site_key)

        if profile.isFreePlan:
            raise InvalidRequest(
                "Free plan sites do not need a subscription",
                code="FREE_PLAN_SITE",
                details={"siteKey": site_key},
            )

        price_id = self.config.stripe_price_id
        if not price_id:
            raise ServerMisconfigured(
                "Checkout price is not configured",
                details={"required": ["STRIPE_DEFAULT_PRICE_ID"]},
            )

        if not profile.stripeCustomerId and not profile.ownerEmail:
            raise IdentityMissing(
                "Site has no payment customer or owner email",
                details={"siteKey": site_key},
            )

        if profile.stripeCustomerId:
            records = self.stripe.list_subscriptions(profile.stripeCustomerId)
            active = find_active_subscription(records)
            if active is not None:
                logger.info(
                    "Checkout skipped site=%s customer=%s subscription=%s reason=already_active",
                    site_key,
                    profile.stripeCustomerId,
                    active.id,
                )
                return CheckoutResult(
                    site_key=site_key,
                    subscription_id=active.id,
                    already_active=True,
                )

        session = self.stripe.create_checkout_session(
            site_key=site_key,
            price_id=price_id,
            customer_id=profile.stripeCustomerId,
            customer_email=None if profile.stripeCustomerId else profile.ownerEmail,
        )
        logger.info(
            "Checkout session created site=%s session=%s boundTo=%s",
            site_key,
            session.id,
            "customer" if profile.stripeCustomerId else "email",
        )
        return CheckoutResult(site_key=site_key, url=session.url, session_id=session.id)
