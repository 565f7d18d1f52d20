"""Storefront Console API.

FastAPI backend for the owner console's billing entitlement flows:
- Entitlement status from the site profile (Firestore) and live Stripe subscriptions
- Stripe checkout session creation
- Checkout redirect verification
- Operator health/diagnostics

The access gate client lives in the sibling console_client package.
"""
