"""Environment loading for BillingConfig."""
import pytest

from console_api.config import (
    DEFAULT_ALLOWED_ORIGINS,
    DEFAULT_CLIENT_BASE_URL,
    BillingConfig,
    resolve_app_base_url,
    resolve_client_base_url,
)


@pytest.mark.parametrize("environ, expected", [
    ({"APP_BASE_URL": "https://console.example.com//", "VERCEL_URL": "preview.vercel.app"}, "https://console.example.com"),
    ({"NEXT_PUBLIC_APP_URL": "https://legacy.example.com/", "VERCEL_URL": "preview.vercel.app"}, "https://legacy.example.com"),
    ({"APP_BASE_URL": "https://console.example.com", "NEXT_PUBLIC_APP_URL": "https://legacy.example.com"}, "https://console.example.com"),
    ({"VERCEL_URL": "preview.vercel.app"}, "https://preview.vercel.app"),
    ({"APP_BASE_URL": "   "}, "http://localhost:3000"),
    ({}, "http://localhost:3000"),
])
def test_app_base_url_fallback_chain(environ, expected):
    assert resolve_app_base_url(environ) == expected


def test_client_base_url():
    assert resolve_client_base_url({}) == DEFAULT_CLIENT_BASE_URL
    assert resolve_client_base_url({"CLIENT_BASE_URL": "https://shop.example.com/"}) == "https://shop.example.com"
    assert resolve_client_base_url({"VERCEL_URL": "shop.vercel.app"}) == "https://shop.vercel.app"


def test_from_env_reads_billing_settings():
    config = BillingConfig.from_env({
        "STRIPE_SECRET_KEY": " sk_test_abc ",
        "STRIPE_DEFAULT_PRICE_ID": "price_abc",
        "APP_BASE_URL": "https://console.example.com",
        "STRIPE_API_TIMEOUT_SEC": "3.5",
        "ALLOWED_ORIGINS": "https://a.example.com/, https://b.example.com",
        "DEBUG": "true",
        "FIREBASE_PRIVATE_KEY": "-----BEGIN-----\\nabc\\n-----END-----",
    })

    assert config.stripe_secret_key == "sk_test_abc"
    assert config.checkout_configured is True
    assert config.stripe_api_timeout_sec == 3.5
    assert config.allowed_origins == ("https://a.example.com", "https://b.example.com")
    assert config.debug is True
    assert config.firebase_private_key == "-----BEGIN-----\nabc\n-----END-----"
    assert config.success_url == "https://console.example.com/?session_id={CHECKOUT_SESSION_ID}"
    assert config.cancel_url == "https://console.example.com"


def test_from_env_defaults():
    config = BillingConfig.from_env({})

    assert config.stripe_configured is False
    assert config.checkout_configured is False
    assert config.allowed_origins == DEFAULT_ALLOWED_ORIGINS
    assert config.subscription_page_size == 10
    assert config.debug is False


def test_private_key_is_not_in_repr():
    config = BillingConfig(firebase_private_key="secret-material")
    assert "secret-material" not in repr(config)
