"""Process-wide configuration for the console API.

Everything the billing components need from the environment is read once,
at startup, into an immutable BillingConfig. Components receive the config
object by reference and never touch os.environ themselves.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

DEFAULT_APP_BASE_URL = "http://localhost:3000"
DEFAULT_CLIENT_BASE_URL = "https://cordely-customers.vercel.app"
DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:3000",           # Next dev server
    "http://localhost:5173",           # Vite dev server
)


def _bool_env(environ: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = str(environ.get(name, "")).strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _str_env(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = str(environ.get(name, "") or "").strip()
    return value or None


def resolve_app_base_url(environ: Mapping[str, str]) -> str:
    """Base URL used for checkout redirects.

    APP_BASE_URL wins, then NEXT_PUBLIC_APP_URL (the name older deployments
    set), both with trailing slashes trimmed; then the Vercel deployment
    host, then local dev.
    """
    explicit = _str_env(environ, "APP_BASE_URL") or _str_env(environ, "NEXT_PUBLIC_APP_URL")
    if explicit:
        return explicit.rstrip("/")
    vercel_host = _str_env(environ, "VERCEL_URL")
    if vercel_host:
        return f"https://{vercel_host}"
    return DEFAULT_APP_BASE_URL


def resolve_client_base_url(environ: Mapping[str, str]) -> str:
    """Base URL of the customer-facing site used in push deep links."""
    explicit = _str_env(environ, "CLIENT_BASE_URL") or _str_env(environ, "VERCEL_URL")
    if not explicit:
        return DEFAULT_CLIENT_BASE_URL
    # VERCEL_URL is a bare host
    if "://" not in explicit:
        explicit = f"https://{explicit}"
    return explicit.rstrip("/")


@dataclass(frozen=True)
class BillingConfig:
    """Immutable settings shared by every billing component."""

    stripe_secret_key: Optional[str] = None
    stripe_price_id: Optional[str] = None
    stripe_api_timeout_sec: float = 8.0
    subscription_page_size: int = 10
    app_base_url: str = DEFAULT_APP_BASE_URL
    client_base_url: str = DEFAULT_CLIENT_BASE_URL
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    debug: bool = False

    # Firebase ID token checks
    max_token_age_seconds: int = 3600
    clock_skew_seconds: int = 300
    skip_token_age_check: bool = False

    # Firebase Admin credentials: a service account file, or the split env trio
    service_account_path: Optional[str] = None
    firebase_project_id: Optional[str] = None
    firebase_client_email: Optional[str] = None
    firebase_private_key: Optional[str] = field(default=None, repr=False)

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key)

    @property
    def checkout_configured(self) -> bool:
        return bool(self.stripe_secret_key and self.stripe_price_id)

    @property
    def success_url(self) -> str:
        # Stripe substitutes the literal {CHECKOUT_SESSION_ID} token on redirect.
        return f"{self.app_base_url}/?session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def cancel_url(self) -> str:
        return self.app_base_url

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BillingConfig":
        env = os.environ if environ is None else environ

        origins_raw = _str_env(env, "ALLOWED_ORIGINS")
        allowed_origins = (
            tuple(o.strip().rstrip("/") for o in origins_raw.split(",") if o.strip())
            if origins_raw
            else DEFAULT_ALLOWED_ORIGINS
        )
        private_key = _str_env(env, "FIREBASE_PRIVATE_KEY")
        if private_key:
            private_key = private_key.replace("\\n", "\n")

        return cls(
            stripe_secret_key=_str_env(env, "STRIPE_SECRET_KEY"),
            stripe_price_id=_str_env(env, "STRIPE_DEFAULT_PRICE_ID"),
            stripe_api_timeout_sec=float(env.get("STRIPE_API_TIMEOUT_SEC", "8")),
            subscription_page_size=int(env.get("STRIPE_SUBSCRIPTION_PAGE_SIZE", "10")),
            app_base_url=resolve_app_base_url(env),
            client_base_url=resolve_client_base_url(env),
            allowed_origins=allowed_origins,
            debug=_bool_env(env, "DEBUG"),
            max_token_age_seconds=int(env.get("MAX_TOKEN_AGE_SECONDS", 3600)),
            clock_skew_seconds=int(env.get("CLOCK_SKEW_SECONDS", 300)),
            skip_token_age_check=_bool_env(env, "SKIP_TOKEN_AGE_CHECK"),
            service_account_path=_str_env(env, "GOOGLE_APPLICATION_CREDENTIALS"),
            firebase_project_id=_str_env(env, "FIREBASE_PROJECT_ID"),
            firebase_client_email=_str_env(env, "FIREBASE_CLIENT_EMAIL"),
            firebase_private_key=private_key,
        )
