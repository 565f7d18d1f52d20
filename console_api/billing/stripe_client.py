"""Minimal Stripe REST client.

Talks to the Stripe HTTP API with form-encoded requests. Only the handful
of endpoints the billing core consumes are wrapped. Every call goes to the
provider; nothing is cached here.
"""

from __future__ import annotations

import http.client as http_client
import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib import error as url_error
from urllib import parse as url_parse
from urllib import request as url_request

from ..config import BillingConfig
from ..models import CheckoutSession, SubscriptionRecord
from .errors import NetworkError, ProviderError, ServerMisconfigured

logger = logging.getLogger("console_api.stripe")

STRIPE_API_BASE = "https://api.stripe.com/v1"


def _flatten_params(data: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """Flatten nested dicts/lists into Stripe's bracketed form keys.

    {"line_items": [{"price": "p", "quantity": 1}]} ->
    [("line_items[0][price]", "p"), ("line_items[0][quantity]", "1")]
    """
    pairs: List[Tuple[str, str]] = []
    for key, value in data.items():
        full_key = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(_flatten_params(value, full_key))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_key = f"{full_key}[{index}]"
                if isinstance(item, dict):
                    pairs.extend(_flatten_params(item, item_key))
                else:
                    pairs.append((item_key, str(item)))
        elif isinstance(value, bool):
            pairs.append((full_key, "true" if value else "false"))
        else:
            pairs.append((full_key, str(value)))
    return pairs


class StripeClient:
    """Form-encoded Stripe API access bound to one BillingConfig."""

    def __init__(self, config: BillingConfig):
        self.config = config

    def request(self, *, method: str, path: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.config.stripe_secret_key:
            raise ServerMisconfigured(
                "Stripe is not configured",
                details={"required": ["STRIPE_SECRET_KEY"]},
            )

        method = method.upper()
        encoded = url_parse.urlencode(_flatten_params(data or {}), quote_via=url_parse.quote)
        url = f"{STRIPE_API_BASE}/{path.lstrip('/')}"
        body: Optional[bytes] = None
        if method in ("POST", "PUT", "PATCH"):
            body = encoded.encode("utf-8")
        elif encoded:
            url = f"{url}?{encoded}"

        req = url_request.Request(
            url=url,
            method=method,
            data=body,
            headers={
                "Authorization": f"Bearer {self.config.stripe_secret_key}",
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
                "User-Agent": "storefront-console-api/1.0",
            },
        )
        try:
            with url_request.urlopen(req, timeout=self.config.stripe_api_timeout_sec) as resp:
                raw_body = resp.read()
        except url_error.HTTPError as http_exc:
            response_body = ""
            try:
                response_body = http_exc.read().decode("utf-8")
            except Exception:
                response_body = ""
            details: Dict[str, Any] = {"httpStatus": http_exc.code, "path": path}
            if response_body:
                try:
                    parsed_error = json.loads(response_body)
                    if isinstance(parsed_error, dict) and isinstance(parsed_error.get("error"), dict):
                        stripe_error = parsed_error["error"]
                        details["stripeCode"] = stripe_error.get("code")
                        details["stripeMessage"] = stripe_error.get("message")
                        details["stripeType"] = stripe_error.get("type")
                except ValueError:
                    pass
            logger.warning(
                "Stripe API error method=%s path=%s status=%s code=%s",
                method,
                path,
                http_exc.code,
                details.get("stripeCode"),
            )
            raise ProviderError(
                "Stripe API request failed",
                status_code=502 if http_exc.code >= 500 else 422,
                details=details,
            ) from http_exc
        except url_error.URLError as url_exc:
            raise NetworkError(
                "Unable to reach Stripe API",
                details={"reason": str(url_exc.reason), "path": path},
            ) from url_exc
        except TimeoutError as timeout_exc:
            raise NetworkError(
                "Stripe API request timed out",
                details={"path": path},
            ) from timeout_exc
        except (http_client.HTTPException, OSError) as read_exc:
            # IncompleteRead, connection reset mid-body, ...
            raise NetworkError(
                "Stripe API connection failed",
                details={"reason": type(read_exc).__name__, "path": path},
            ) from read_exc

        try:
            body_text = raw_body.decode("utf-8")
            parsed = json.loads(body_text) if body_text else {}
        except ValueError as parse_exc:
            logger.warning("Stripe API returned a non-JSON body method=%s path=%s", method, path)
            raise ProviderError(
                "Stripe API returned a malformed response",
                details={"path": path},
            ) from parse_exc
        if not isinstance(parsed, dict):
            return {}
        return parsed

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    def list_subscriptions(self, customer_id: str) -> List[SubscriptionRecord]:
        """Most recent page of a customer's subscriptions, any status."""
        result = self.request(
            method="GET",
            path="subscriptions",
            data={
                "customer": customer_id,
                "status": "all",
                "limit": self.config.subscription_page_size,
            },
        )
        items = result.get("data") if isinstance(result.get("data"), list) else []
        return [SubscriptionRecord.from_stripe(item) for item in items if isinstance(item, dict)]

    def create_checkout_session(
        self,
        *,
        site_key: str,
        price_id: str,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        data: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "metadata": {"siteKey": site_key},
            "success_url": self.config.success_url,
            "cancel_url": self.config.cancel_url,
        }
        if customer_id:
            data["customer"] = customer_id
        else:
            data["customer_email"] = customer_email
        return CheckoutSession.from_stripe(
            self.request(method="POST", path="checkout/sessions", data=data)
        )

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        return CheckoutSession.from_stripe(
            self.request(
                method="GET",
                path=f"checkout/sessions/{url_parse.quote(session_id, safe='')}",
            )
        )

    def retrieve_price(self, price_id: str) -> Dict[str, Any]:
        return self.request(method="GET", path=f"prices/{url_parse.quote(price_id, safe='')}")
