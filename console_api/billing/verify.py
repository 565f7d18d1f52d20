"""Checkout redirect verification.

Read-only: retrieving a session and listing subscriptions has no side
effects, so the same session id can be verified any number of times.
A session only answers for the site named in its metadata.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..models import CHECKOUT_SESSION_ID_PATTERN, EntitlementStatus
from .errors import InvalidRequest
from .profile_store import SiteProfileStore, validate_site_key
from .status import derive_status, needs_provider_lookup
from .stripe_client import StripeClient

logger = logging.getLogger("console_api.billing.verify")


class SessionVerifier:

    def __init__(self, profiles: SiteProfileStore, stripe: StripeClient):
        self.profiles = profiles
        self.stripe = stripe

    def verify(self, session_id: Optional[str], site_key: Optional[str]) -> EntitlementStatus:
        session_id = str(session_id or "").strip()
        if not CHECKOUT_SESSION_ID_PATTERN.match(session_id):
            raise InvalidRequest("session_id required", code="SESSION_ID_INVALID")
        site_key = validate_site_key(site_key)

        session = self.stripe.retrieve_checkout_session(session_id)
        if session.siteKey != site_key:
            raise InvalidRequest(
                "Checkout session does not belong to this site",
                code="SESSION_SITE_MISMATCH",
                details={"siteKey": site_key},
            )

        profile = self.profiles.get(site_key)

        # A site whose first checkout created the customer has no linked id yet.
        if not profile.stripeCustomerId and session.customerId:
            profile = profile.model_copy(update={"stripeCustomerId": session.customerId})

        records = []
        if needs_provider_lookup(profile):
            records = self.stripe.list_subscriptions(profile.stripeCustomerId)

        status = derive_status(profile, records)
        logger.info(
            "Verified checkout session=%s site=%s customer=%s status=%s",
            session.id,
            site_key,
            profile.stripeCustomerId or "-",
            status.value,
        )
        return status
