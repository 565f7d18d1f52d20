"""Storefront Console API - Main Application.

FastAPI application backing the owner console's billing flows:
entitlement status, Stripe checkout and checkout-redirect verification.

Usage:
    uvicorn console_api.main:app --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import BillingConfig
from .dependencies import init_firestore
from .middleware.rate_limit import setup_rate_limiting
from .routers import billing, health

# =============================================================================
# CONFIGURATION
# =============================================================================

# Built once per process; handlers reach it through app.state.config.
CONFIG = BillingConfig.from_env()
API_VERSION = health.API_VERSION

logging.basicConfig(
    level=logging.DEBUG if CONFIG.debug else logging.INFO,
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
)
logger = logging.getLogger("console_api.main")


# =============================================================================
# LIFESPAN (Startup/Shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown hooks."""
    config: BillingConfig = app.state.config
    logger.info(f"Starting Storefront Console API v{API_VERSION}")
    logger.info(f"Debug mode: {config.debug}")

    if not config.stripe_configured:
        logger.error("BillingMisconfigured code=SERVER_MISCONFIGURED missing=STRIPE_SECRET_KEY")
    elif not config.checkout_configured:
        logger.error("BillingMisconfigured code=SERVER_MISCONFIGURED missing=STRIPE_DEFAULT_PRICE_ID")

    try:
        init_firestore(config)
        logger.info("Firestore connected")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("Shutting down Storefront Console API")


# =============================================================================
# APPLICATION
# =============================================================================

if CONFIG.debug:
    app = FastAPI(
        title="Storefront Console API",
        version=API_VERSION,
        lifespan=lifespan,
    )
else:
    # Production: disable docs endpoints
    app = FastAPI(
        title="Storefront Console API",
        version=API_VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

app.state.config = CONFIG


# =============================================================================
# MIDDLEWARE
# =============================================================================

setup_rate_limiting(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(CONFIG.allowed_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
    max_age=3600,
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)

    if "server" in response.headers:
        del response.headers["server"]

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    # Status answers depend on live Stripe state.
    response.headers.setdefault("Cache-Control", "no-store")

    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = datetime.utcnow()

    response = await call_next(request)

    duration_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
    # Query strings are left out: they carry checkout session ids.
    logger.debug(
        f"{request.method} {request.url.path} "
        f"-> {response.status_code} ({duration_ms:.0f}ms)"
    )

    return response


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions with generic error response."""
    logger.exception(f"Unhandled exception on {request.url.path}")

    if request.app.state.config.debug:
        return JSONResponse(
            status_code=500,
            content={
                "error": str(exc),
                "code": "INTERNAL_ERROR",
                "type": type(exc).__name__
            }
        )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "code": "INTERNAL_ERROR"
        }
    )


# =============================================================================
# ROUTERS
# =============================================================================

app.include_router(billing.router, prefix="/api", tags=["Billing"])
app.include_router(health.router, prefix="/api", tags=["Health"])


@app.get("/")
async def root():
    """Root endpoint - API info."""
    return {
        "name": "Storefront Console API",
        "version": API_VERSION,
        "status": "running"
    }
