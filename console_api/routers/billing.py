"""Billing router - entitlement status, checkout and redirect verification.

Endpoints:
    GET  /api/stripe/check-subscription?siteKey=   - current status for a site
    GET  /api/stripe/verify-subscription?session_id=&siteKey= - status after checkout redirect
    POST /api/stripe/create-checkout-session       - start a subscription checkout
    GET  /api/sites/{siteKey}/plan-flags           - plan flags the access gate needs

Handlers never let a BillingError escape: status lookups answer with
status "none" plus an error code, checkout answers with an ErrorResponse.
"""

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ..billing import (
    BillingError,
    CheckoutSessionIssuer,
    ServerMisconfigured,
    SessionVerifier,
    SiteProfileStore,
    StatusDeriver,
)
from ..dependencies import (
    get_checkout_issuer,
    get_profile_store,
    get_session_verifier,
    get_status_deriver,
    verify_firebase_token,
)
from ..middleware.rate_limit import rate_limit_read, rate_limit_write
from ..models import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    EntitlementStatus,
    EntitlementStatusResponse,
    ErrorResponse,
    PlanFlagsResponse,
)

router = APIRouter()
logger = logging.getLogger("console_api.billing")

PUBLIC_MISCONFIGURED_MESSAGE = "Billing is temporarily unavailable"


def _build_correlation_id(request: Request) -> str:
    existing = request.headers.get("X-Correlation-ID")
    if existing:
        return existing
    return f"billing-{uuid4()}"


def _log_billing_error(exc: BillingError, *, action: str, correlation_id: str, **context: Any) -> None:
    fields = " ".join(f"{k}={v}" for k, v in context.items())
    if isinstance(exc, ServerMisconfigured):
        logger.error(
            "BillingMisconfigured action=%s code=%s error=%s details=%s %s correlationId=%s",
            action, exc.code, exc.error, exc.details, fields, correlation_id,
        )
    elif exc.retryable:
        logger.warning(
            "BillingProviderFailure action=%s code=%s details=%s %s correlationId=%s",
            action, exc.code, exc.details, fields, correlation_id,
        )
    else:
        logger.info(
            "BillingRejected action=%s code=%s error=%s %s correlationId=%s",
            action, exc.code, exc.error, fields, correlation_id,
        )


def _public_message(exc: BillingError) -> str:
    if isinstance(exc, ServerMisconfigured):
        return PUBLIC_MISCONFIGURED_MESSAGE
    return exc.error


def _error_response(exc: BillingError, *, correlation_id: str, **details: Any) -> JSONResponse:
    payload = exc.to_payload()
    payload["error"] = _public_message(exc)
    public_details: Dict[str, Any] = {} if isinstance(exc, ServerMisconfigured) else dict(exc.details)
    public_details.update({k: v for k, v in details.items() if v is not None})
    public_details["correlationId"] = correlation_id
    payload["details"] = public_details
    return JSONResponse(status_code=exc.status_code, content=payload)


def _status_error_response(exc: BillingError) -> JSONResponse:
    body = EntitlementStatusResponse(
        ok=False,
        status=EntitlementStatus.NONE,
        error=_public_message(exc),
        code=exc.code,
        retryable=exc.retryable,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


@router.get(
    "/stripe/check-subscription",
    response_model=EntitlementStatusResponse,
)
@rate_limit_read
async def check_subscription(
    request: Request,
    siteKey: Optional[str] = Query(default=None),
    profiles: SiteProfileStore = Depends(get_profile_store),
    deriver: StatusDeriver = Depends(get_status_deriver),
):
    """Current entitlement status for a site, recomputed from Stripe on every call."""
    correlation_id = _build_correlation_id(request)
    try:
        profile = profiles.get(siteKey)
    except BillingError as exc:
        _log_billing_error(exc, action="check", correlation_id=correlation_id, site=siteKey)
        return _status_error_response(exc)

    lookup = deriver.resolve(profile)
    if lookup.error is not None:
        _log_billing_error(lookup.error, action="check", correlation_id=correlation_id, site=profile.siteKey)
        return _status_error_response(lookup.error)

    logger.info(
        "EntitlementCheck site=%s status=%s correlationId=%s",
        profile.siteKey,
        lookup.status.value,
        correlation_id,
    )
    return EntitlementStatusResponse(ok=True, status=lookup.status)


@router.get(
    "/stripe/verify-subscription",
    response_model=EntitlementStatusResponse,
)
@rate_limit_read
async def verify_subscription(
    request: Request,
    session_id: Optional[str] = Query(default=None),
    siteKey: Optional[str] = Query(default=None),
    verifier: SessionVerifier = Depends(get_session_verifier),
):
    """Entitlement status after a checkout redirect. Safe to call repeatedly.

    Input validation happens in the verifier so every rejection still
    answers with a status.
    """
    correlation_id = _build_correlation_id(request)
    try:
        status = verifier.verify(session_id, siteKey)
    except BillingError as exc:
        _log_billing_error(
            exc, action="verify", correlation_id=correlation_id, session=session_id, site=siteKey,
        )
        return _status_error_response(exc)
    return EntitlementStatusResponse(ok=True, status=status)


@router.post(
    "/stripe/create-checkout-session",
    response_model=CheckoutSessionResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
@rate_limit_write
async def create_checkout_session(
    request: Request,
    payload: CheckoutSessionRequest,
    decoded_token: dict = Depends(verify_firebase_token),
    issuer: CheckoutSessionIssuer = Depends(get_checkout_issuer),
):
    correlation_id = _build_correlation_id(request)
    try:
        result = issuer.issue(payload.siteKey)
    except BillingError as exc:
        _log_billing_error(
            exc,
            action="checkout",
            correlation_id=correlation_id,
            site=payload.siteKey,
            uid=decoded_token.get("uid"),
        )
        return _error_response(exc, correlation_id=correlation_id, siteKey=payload.siteKey)

    if result.already_active:
        return CheckoutSessionResponse(
            ok=True,
            siteKey=result.site_key,
            subscriptionId=result.subscription_id,
            alreadyActive=True,
            message="already active",
        )
    return CheckoutSessionResponse(
        ok=True,
        siteKey=result.site_key,
        url=result.url,
        sessionId=result.session_id,
    )


@router.get(
    "/sites/{siteKey}/plan-flags",
    response_model=PlanFlagsResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
@rate_limit_read
async def get_plan_flags(
    request: Request,
    siteKey: str,
    profiles: SiteProfileStore = Depends(get_profile_store),
):
    """Plan flags for the access gate: free plan and whether a Stripe customer is linked."""
    correlation_id = _build_correlation_id(request)
    try:
        profile = profiles.get(siteKey)
    except BillingError as exc:
        _log_billing_error(exc, action="plan_flags", correlation_id=correlation_id, site=siteKey)
        return _error_response(exc, correlation_id=correlation_id, siteKey=siteKey)
    return PlanFlagsResponse(
        siteKey=profile.siteKey,
        isFreePlan=profile.isFreePlan,
        hasCustomer=profile.hasCustomer,
    )
