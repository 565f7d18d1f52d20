"""Health check router - liveness and operator diagnostics.

Endpoints:
    GET /api/health          - Overall health status
    GET /api/health/billing  - Stripe configuration report + price check
    GET /api/health/firebase - Firestore read check
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..billing import BillingError, StripeClient
from ..billing.profile_store import SITE_SETTINGS_COLLECTION
from ..config import BillingConfig
from ..dependencies import get_config, get_firestore, get_stripe_client
from ..middleware.rate_limit import rate_limit_health
from ..models import BillingConfigReport

router = APIRouter()
logger = logging.getLogger("console_api.health")

API_VERSION = "1.0.0"


def _prefix(value, length: int = 3):
    return value[:length] if value else None


@router.get("/health")
async def health_check() -> dict:
    """Basic health check - no auth required."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": API_VERSION,
    }


@router.get("/health/billing", response_model=BillingConfigReport)
@rate_limit_health
async def billing_health(
    request: Request,
    config: BillingConfig = Depends(get_config),
    stripe: StripeClient = Depends(get_stripe_client),
):
    """Report which billing settings are present and whether the price exists.

    Only key prefixes are returned (e.g. "sk_", "pri"), never the values.
    """
    report = BillingConfigReport(
        ok=True,
        hasSecret=bool(config.stripe_secret_key),
        secretPrefix=_prefix(config.stripe_secret_key),
        hasPrice=bool(config.stripe_price_id),
        pricePrefix=_prefix(config.stripe_price_id),
        appBaseUrl=config.app_base_url,
    )
    if config.stripe_price_id:
        try:
            stripe.retrieve_price(config.stripe_price_id)
            report.priceOk = True
        except BillingError as exc:
            logger.error("Billing health price check failed code=%s details=%s", exc.code, exc.details)
            report.ok = False
            report.error = exc.details.get("stripeMessage") or exc.error
            return JSONResponse(status_code=500, content=report.model_dump(mode="json"))
    return report


@router.get("/health/firebase")
@rate_limit_health
async def firebase_health(request: Request):
    """Firestore connectivity check (reads at most one siteSettings document)."""
    try:
        db = get_firestore(request.app.state.config)
        docs = list(db.collection(SITE_SETTINGS_COLLECTION).limit(1).stream())
        return {"ok": True, "canRead": True, "count": len(docs)}
    except Exception as e:
        logger.error("Firestore health check failed: %s", e)
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
