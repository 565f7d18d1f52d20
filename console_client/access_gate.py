"""Subscription access gate for the owner console.

On activation the gate fetches the site's plan flags and its entitlement
status at the same time and only decides once both are in, so a paying
site never flashes the blocking overlay. Every failure collapses to the
blocked outcome.

    gate = AccessGate(client, site_key="shopA", location=location)
    decision = await gate.activate()
    if decision and decision.overlay:
        url = await gate.start_checkout()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

logger = logging.getLogger("console_client.access_gate")

SESSION_ID_PARAM = "session_id"

CHECK_PATH = "/api/stripe/check-subscription"
VERIFY_PATH = "/api/stripe/verify-subscription"
CHECKOUT_PATH = "/api/stripe/create-checkout-session"
PLAN_FLAGS_PATH = "/api/sites/{site_key}/plan-flags"

OPEN_STATUSES = frozenset({"setup_mode", "active", "pending_cancel"})


class GateState(str, Enum):
    LOADING = "loading"
    FREE = "free"
    SETUP = "setup"
    ACTIVE = "active"
    PENDING_CANCEL = "pending_cancel"
    CANCELED = "canceled"
    NONE = "none"


STATUS_TO_STATE = {
    "setup_mode": GateState.SETUP,
    "active": GateState.ACTIVE,
    "pending_cancel": GateState.PENDING_CANCEL,
    "canceled": GateState.CANCELED,
}


@dataclass(frozen=True)
class PlanFlags:
    is_free_plan: bool = False
    has_customer: bool = False


BLOCKED_FLAGS = PlanFlags()


@dataclass(frozen=True)
class GateDecision:
    state: GateState
    status: str
    overlay: bool


class Location(Protocol):
    """The view's address bar: current URL plus a history-replace."""

    @property
    def href(self) -> str: ...

    def replace(self, url: str) -> None: ...


class AddressBar:
    """In-memory Location for hosts without a browser history."""

    def __init__(self, href: str):
        self._href = href
        self.history = [href]

    @property
    def href(self) -> str:
        return self._href

    def replace(self, url: str) -> None:
        self._href = url
        self.history[-1] = url

    def navigate(self, url: str) -> None:
        self._href = url
        self.history.append(url)


def is_open(flags: PlanFlags, status: str) -> bool:
    # Free plan is never gated; without a linked customer nothing else opens it.
    return flags.is_free_plan or (flags.has_customer and status in OPEN_STATUSES)


def decide(flags: PlanFlags, status: str) -> GateDecision:
    if flags.is_free_plan:
        state = GateState.FREE
    else:
        state = STATUS_TO_STATE.get(status, GateState.NONE)
    return GateDecision(state=state, status=status, overlay=not is_open(flags, status))


def session_id_from_url(url: str) -> Optional[str]:
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == SESSION_ID_PARAM and value:
            return value
    return None


def strip_session_id(url: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != SESSION_ID_PARAM]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class AccessGate:
    """Decides whether the console shows the subscription overlay."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        site_key: str,
        location: Location,
        id_token: Optional[str] = None,
    ):
        self.client = client
        self.site_key = site_key
        self.location = location
        self.id_token = id_token
        self.state = GateState.LOADING
        self.decision: Optional[GateDecision] = None
        self._detached = False

    @property
    def detached(self) -> bool:
        return self._detached

    def teardown(self) -> None:
        """Host view is going away; in-flight results must be dropped."""
        self._detached = True

    async def activate(self) -> Optional[GateDecision]:
        """Fetch flags and status concurrently, then decide.

        Returns None when the gate is torn down, before or during the fetch.
        """
        if self._detached:
            return None
        self.state = GateState.LOADING
        self.decision = None

        session_id = session_id_from_url(self.location.href)
        flags, status = await asyncio.gather(
            self._fetch_plan_flags(),
            self._fetch_status(session_id),
        )

        if self._detached:
            logger.debug("Gate for site=%s torn down; discarding results", self.site_key)
            return None

        if session_id:
            # One verification pass only: refresh/back must not verify again.
            self.location.replace(strip_session_id(self.location.href))

        decision = decide(flags, status)
        self.state = decision.state
        self.decision = decision
        logger.info(
            "Gate decided site=%s state=%s overlay=%s",
            self.site_key,
            decision.state.value,
            decision.overlay,
        )
        return decision

    async def start_checkout(self) -> Optional[str]:
        """Overlay call-to-action: ask the API for a checkout URL.

        Returns the URL to redirect to. If the site turned out to be active
        already, re-runs activation and returns None. Failures return None
        and leave the overlay up so the user can try again. A torn-down gate
        returns None without touching its state.
        """
        if self._detached:
            return None
        headers = {"Authorization": f"Bearer {self.id_token}"} if self.id_token else {}
        try:
            response = await self.client.post(
                CHECKOUT_PATH,
                json={"siteKey": self.site_key},
                headers=headers,
            )
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Checkout request failed site=%s: %s", self.site_key, e)
            return None

        if self._detached:
            logger.debug("Gate for site=%s torn down; discarding checkout answer", self.site_key)
            return None

        if response.status_code != 200 or not isinstance(body, dict):
            logger.warning(
                "Checkout rejected site=%s status=%s code=%s retryable=%s",
                self.site_key,
                response.status_code,
                body.get("code") if isinstance(body, dict) else None,
                body.get("retryable") if isinstance(body, dict) else None,
            )
            return None

        if body.get("alreadyActive"):
            await self.activate()
            return None
        return body.get("url") or None

    async def _fetch_plan_flags(self) -> PlanFlags:
        try:
            response = await self.client.get(PLAN_FLAGS_PATH.format(site_key=self.site_key))
            if response.status_code != 200:
                logger.warning("Plan flags unavailable site=%s status=%s", self.site_key, response.status_code)
                return BLOCKED_FLAGS
            body = response.json()
            return PlanFlags(
                is_free_plan=body.get("isFreePlan") is True,
                has_customer=body.get("hasCustomer") is True,
            )
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("Plan flags fetch failed site=%s: %s", self.site_key, e)
            return BLOCKED_FLAGS

    async def _fetch_status(self, session_id: Optional[str]) -> str:
        if session_id:
            request = self.client.get(
                VERIFY_PATH, params={SESSION_ID_PARAM: session_id, "siteKey": self.site_key}
            )
        else:
            request = self.client.get(CHECK_PATH, params={"siteKey": self.site_key})
        try:
            response = await request
            body = response.json()
            status = body.get("status") if isinstance(body, dict) else None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Status fetch failed site=%s: %s", self.site_key, e)
            return "none"
        if response.status_code != 200:
            logger.warning(
                "Status lookup failed site=%s status=%s code=%s",
                self.site_key,
                response.status_code,
                body.get("code") if isinstance(body, dict) else None,
            )
            return "none"
        return status if isinstance(status, str) else "none"
