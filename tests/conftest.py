"""
Pytest configuration and shared helpers for the billing tests.

Firestore and Stripe are never contacted: Firestore is a MagicMock that
serves siteSettings documents from a dict, Stripe is a MagicMock built
against the StripeClient interface.
"""
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from console_api.billing import SiteProfileStore, StripeClient
from console_api.config import BillingConfig
from console_api.dependencies import get_profile_store, get_stripe_client, verify_firebase_token
from console_api.main import app
from console_api.middleware.rate_limit import limiter
from console_api.models import CheckoutSession, SubscriptionRecord, SubscriptionState

limiter.enabled = False


def make_record(
    status: str,
    cancel_at_period_end: bool = False,
    sub_id: str = "sub_1",
    customer_id: str = "cus_1",
) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=sub_id,
        status=SubscriptionState.from_provider(status),
        cancelAtPeriodEnd=cancel_at_period_end,
        customerId=customer_id,
    )


def make_db(docs: Dict[str, Optional[Dict[str, Any]]]) -> MagicMock:
    """Firestore double: db.collection(name).document(key).get() -> snapshot."""
    db = MagicMock()

    def document(key):
        ref = MagicMock()
        snapshot = MagicMock()
        snapshot.exists = key in docs
        snapshot.to_dict.return_value = docs.get(key)
        ref.get.return_value = snapshot
        return ref

    db.collection.return_value.document.side_effect = document
    return db


def make_stripe(
    records: Optional[List[SubscriptionRecord]] = None,
    session: Optional[CheckoutSession] = None,
) -> MagicMock:
    stripe = MagicMock(spec=StripeClient)
    stripe.list_subscriptions.return_value = list(records or [])
    stripe.create_checkout_session.return_value = session or CheckoutSession(
        id="cs_test_new",
        url="https://checkout.stripe.com/c/pay/cs_test_new",
        customerId="cus_1",
        siteKey="shopA",
    )
    return stripe


@pytest.fixture
def config() -> BillingConfig:
    return BillingConfig(
        stripe_secret_key="sk_test_123",
        stripe_price_id="price_123",
        app_base_url="https://console.example.com",
    )


@pytest.fixture
def site_docs() -> Dict[str, Dict[str, Any]]:
    return {
        "shopA": {"siteName": "Shop A", "isFreePlan": False, "setupMode": False, "stripeCustomerId": "cus_1"},
        "freeShop": {"siteName": "Free", "isFreePlan": True},
        "setupShop": {"setupMode": True, "stripeCustomerId": "cus_setup"},
        "emailShop": {"ownerEmail": "owner@example.com"},
        "bareShop": {"siteName": "Bare"},
    }


@pytest.fixture
def profiles(site_docs) -> SiteProfileStore:
    return SiteProfileStore(make_db(site_docs))


@pytest.fixture
def stripe() -> MagicMock:
    return make_stripe()


@pytest.fixture
def client(config, profiles, stripe):
    """TestClient with Firestore, Stripe and Firebase auth replaced."""
    original_config = app.state.config
    app.state.config = config
    app.dependency_overrides[get_profile_store] = lambda: profiles
    app.dependency_overrides[get_stripe_client] = lambda: stripe
    app.dependency_overrides[verify_firebase_token] = lambda: {"uid": "owner-1"}
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.config = original_config
