"""FastAPI dependencies for configuration, Firebase and the billing components.

The BillingConfig built at startup lives on app.state; everything here
hands that one object to the components instead of reading the
environment again.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import firebase_admin
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth, credentials, firestore

from .billing import (
    CheckoutSessionIssuer,
    SessionVerifier,
    SiteProfileStore,
    StatusDeriver,
    StripeClient,
)
from .config import BillingConfig

logger = logging.getLogger("console_api.dependencies")
security_logger = logging.getLogger("security")

# Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# CONFIGURATION
# =============================================================================

def get_config(request: Request) -> BillingConfig:
    return request.app.state.config


# =============================================================================
# FIREBASE INITIALIZATION
# =============================================================================

_firebase_app: Optional[firebase_admin.App] = None
_firestore_client = None


def _firebase_credential(config: BillingConfig):
    if config.service_account_path:
        if not Path(config.service_account_path).exists():
            raise RuntimeError(f"Service account not found: {config.service_account_path}")
        return credentials.Certificate(config.service_account_path)

    if config.firebase_project_id and config.firebase_client_email and config.firebase_private_key:
        return credentials.Certificate({
            "type": "service_account",
            "project_id": config.firebase_project_id,
            "client_email": config.firebase_client_email,
            "private_key": config.firebase_private_key,
            "token_uri": "https://oauth2.googleapis.com/token",
        })

    raise RuntimeError(
        "Missing Firebase Admin credentials "
        "(GOOGLE_APPLICATION_CREDENTIALS or FIREBASE_PROJECT_ID/CLIENT_EMAIL/PRIVATE_KEY)"
    )


def get_firebase_app(config: BillingConfig) -> firebase_admin.App:
    """Get or initialize Firebase Admin app."""
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    # Check if already initialized
    try:
        _firebase_app = firebase_admin.get_app()
        return _firebase_app
    except ValueError:
        pass

    _firebase_app = firebase_admin.initialize_app(_firebase_credential(config))
    logger.info("Firebase Admin initialized")
    return _firebase_app


def init_firestore(config: BillingConfig):
    """Initialize the Firestore client (singleton). Called from the app lifespan."""
    global _firestore_client

    if _firestore_client is None:
        get_firebase_app(config)
        _firestore_client = firestore.client()
        logger.info("Firestore client initialized")

    return _firestore_client


def get_firestore(config: BillingConfig = Depends(get_config)):
    """Get Firestore client (singleton)."""
    return init_firestore(config)


# =============================================================================
# BILLING COMPONENTS
# =============================================================================

def get_stripe_client(config: BillingConfig = Depends(get_config)) -> StripeClient:
    return StripeClient(config)


def get_profile_store(db=Depends(get_firestore)) -> SiteProfileStore:
    return SiteProfileStore(db)


def get_status_deriver(stripe: StripeClient = Depends(get_stripe_client)) -> StatusDeriver:
    return StatusDeriver(stripe)


def get_checkout_issuer(
    config: BillingConfig = Depends(get_config),
    profiles: SiteProfileStore = Depends(get_profile_store),
    stripe: StripeClient = Depends(get_stripe_client),
) -> CheckoutSessionIssuer:
    return CheckoutSessionIssuer(config, profiles, stripe)


def get_session_verifier(
    profiles: SiteProfileStore = Depends(get_profile_store),
    stripe: StripeClient = Depends(get_stripe_client),
) -> SessionVerifier:
    return SessionVerifier(profiles, stripe)


# =============================================================================
# AUTHENTICATION
# =============================================================================

async def verify_firebase_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    config: BillingConfig = Depends(get_config),
) -> Dict[str, Any]:
    """Verify Firebase ID token from Authorization header.

    Security checks:
    - Valid signature, not expired, not revoked
    - Token age < MAX_TOKEN_AGE_SECONDS (force refresh)
    - Not from the future (clock skew attack)

    Returns:
        Decoded token claims including 'uid'

    Raises:
        HTTPException 401 on any auth failure
    """
    if credentials is None:
        _log_auth_failure(request, "missing_auth_header")
        raise HTTPException(401, "Missing Authorization header")

    token = credentials.credentials

    try:
        get_firebase_app(config)

        decoded = auth.verify_id_token(token, check_revoked=True)

        if not config.skip_token_age_check:
            now = datetime.utcnow().timestamp()
            issued_at = decoded.get('iat', 0)

            if now - issued_at > config.max_token_age_seconds:
                _log_auth_failure(request, "token_too_old", uid=decoded.get('uid'))
                raise HTTPException(401, "Token too old, please re-authenticate")

            if issued_at > now + config.clock_skew_seconds:
                _log_auth_failure(request, "future_token", uid=decoded.get('uid'))
                raise HTTPException(401, "Invalid token timestamp")

        return decoded

    except HTTPException:
        raise
    except auth.RevokedIdTokenError:
        _log_auth_failure(request, "revoked_token")
        raise HTTPException(401, "Token has been revoked")
    except auth.ExpiredIdTokenError:
        _log_auth_failure(request, "expired_token")
        raise HTTPException(401, "Token has expired")
    except auth.InvalidIdTokenError as e:
        _log_auth_failure(request, "invalid_token", error=str(e))
        raise HTTPException(401, "Invalid token")
    except Exception as e:
        _log_auth_failure(request, "auth_error", error=str(e))
        raise HTTPException(401, "Authentication failed")


def _log_auth_failure(request: Request, reason: str, **extra):
    """Log authentication failure for security monitoring."""
    security_logger.warning({
        "event": "auth_failure",
        "reason": reason,
        "ip": request.client.host if request.client else "unknown",
        "user_agent": request.headers.get("user-agent", "unknown"),
        "path": request.url.path,
        **extra
    })
