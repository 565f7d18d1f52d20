"""Entitlement status derivation.

Priority chain (first match wins, record order never matters):
setup mode -> free plan / no customer -> active -> pending cancel -> canceled -> none.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..models import EntitlementStatus, SiteBillingProfile, SubscriptionRecord, SubscriptionState
from .errors import BillingError
from .stripe_client import StripeClient

logger = logging.getLogger("console_api.billing.status")

LIVE_STATES = (SubscriptionState.ACTIVE, SubscriptionState.TRIALING)


@dataclass(frozen=True)
class SubscriptionSummary:
    has_active: bool
    has_pending: bool
    has_canceled: bool


@dataclass(frozen=True)
class EntitlementLookup:
    """Resolved status plus the provider failure, if any, for the caller to log."""
    status: EntitlementStatus
    error: Optional[BillingError] = None


def is_renewing(record: SubscriptionRecord) -> bool:
    return record.status in LIVE_STATES and not record.cancelAtPeriodEnd


def find_active_subscription(records: Iterable[SubscriptionRecord]) -> Optional[SubscriptionRecord]:
    for record in records:
        if is_renewing(record):
            return record
    return None


def classify_subscriptions(records: Iterable[SubscriptionRecord]) -> SubscriptionSummary:
    records = list(records)
    return SubscriptionSummary(
        has_active=any(is_renewing(r) for r in records),
        has_pending=any(r.status in LIVE_STATES and r.cancelAtPeriodEnd for r in records),
        has_canceled=any(r.status == SubscriptionState.CANCELED for r in records),
    )


def status_from_summary(summary: SubscriptionSummary) -> EntitlementStatus:
    if summary.has_active:
        return EntitlementStatus.ACTIVE
    if summary.has_pending:
        return EntitlementStatus.PENDING_CANCEL
    if summary.has_canceled:
        return EntitlementStatus.CANCELED
    return EntitlementStatus.NONE


def needs_provider_lookup(profile: SiteBillingProfile) -> bool:
    return not (profile.setupMode or profile.isFreePlan or not profile.stripeCustomerId)


def derive_status(
    profile: SiteBillingProfile,
    records: Sequence[SubscriptionRecord],
) -> EntitlementStatus:
    """Pure, total: the same profile and records always give the same status."""
    if profile.setupMode:
        return EntitlementStatus.SETUP_MODE
    if profile.isFreePlan or not profile.stripeCustomerId:
        return EntitlementStatus.NONE
    return status_from_summary(classify_subscriptions(records))


class StatusDeriver:
    """Fetches a customer's subscriptions and derives the site's status.

    Provider failures are returned, not raised: the status falls back to
    'none' and the error rides along in the EntitlementLookup.
    """

    def __init__(self, stripe: StripeClient):
        self.stripe = stripe

    def resolve(self, profile: SiteBillingProfile) -> EntitlementLookup:
        if not needs_provider_lookup(profile):
            return EntitlementLookup(status=derive_status(profile, []))

        try:
            records = self.stripe.list_subscriptions(profile.stripeCustomerId)
        except BillingError as exc:
            return EntitlementLookup(status=EntitlementStatus.NONE, error=exc)

        status = derive_status(profile, records)
        logger.debug(
            "Derived status site=%s customer=%s records=%d status=%s",
            profile.siteKey,
            profile.stripeCustomerId,
            len(records),
            status.value,
        )
        return EntitlementLookup(status=status)
