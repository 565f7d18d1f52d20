"""
Access gate: decision rule, concurrent fetches, teardown and the one-shot
session_id verification.

The console API is replaced by an httpx.MockTransport handler.
"""
import asyncio
from collections import Counter

import httpx
import pytest

from console_client import AccessGate, AddressBar, GateState, PlanFlags, decide, is_open
from console_client.access_gate import session_id_from_url, strip_session_id

BASE = "https://console.example.com"


class FakeConsoleApi:
    """Routes gate requests to canned answers and counts them."""

    def __init__(self, flags=None, status="active", verify_status="active", checkout=None):
        self.flags = flags if flags is not None else {"isFreePlan": False, "hasCustomer": True}
        self.status = status
        self.verify_status = verify_status
        self.checkout = checkout or {"ok": True, "siteKey": "shopA", "url": "https://checkout.stripe.com/c/pay/cs_x"}
        self.calls = Counter()
        self.requests = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/plan-flags"):
            self.calls["flags"] += 1
            return self._answer(self.flags)
        if path == "/api/stripe/check-subscription":
            self.calls["check"] += 1
            return self._answer({"ok": True, "status": self.status})
        if path == "/api/stripe/verify-subscription":
            self.calls["verify"] += 1
            return self._answer({"ok": True, "status": self.verify_status})
        if path == "/api/stripe/create-checkout-session":
            self.calls["checkout"] += 1
            return self._answer(self.checkout)
        return httpx.Response(404, json={"error": "not found"})

    @staticmethod
    def _answer(value):
        if isinstance(value, httpx.Response):
            return value
        return httpx.Response(200, json=value)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE)


# =============================================================================
# DECISION RULE
# =============================================================================

@pytest.mark.parametrize("status", ["none", "canceled", "active", "setup_mode"])
def test_free_plan_never_overlays(status):
    flags = PlanFlags(is_free_plan=True, has_customer=False)
    decision = decide(flags, status)
    assert decision.overlay is False
    assert decision.state == GateState.FREE


@pytest.mark.parametrize("status", ["setup_mode", "active", "pending_cancel"])
def test_open_statuses_need_a_customer(status):
    assert is_open(PlanFlags(has_customer=True), status) is True
    assert is_open(PlanFlags(has_customer=False), status) is False


@pytest.mark.parametrize("status, state", [
    ("canceled", GateState.CANCELED),
    ("none", GateState.NONE),
    ("garbage", GateState.NONE),
])
def test_closed_statuses_overlay(status, state):
    decision = decide(PlanFlags(has_customer=True), status)
    assert decision.overlay is True
    assert decision.state == state


def test_session_id_helpers():
    url = f"{BASE}/?siteKey=shopA&session_id=cs_test_1#orders"
    assert session_id_from_url(url) == "cs_test_1"
    assert strip_session_id(url) == f"{BASE}/?siteKey=shopA#orders"
    assert session_id_from_url(f"{BASE}/?session_id=") is None


# =============================================================================
# ACTIVATION
# =============================================================================

@pytest.mark.asyncio
async def test_active_site_opens():
    api = FakeConsoleApi(status="active")
    async with _client(api) as client:
        gate = AccessGate(client, "shopA", AddressBar(f"{BASE}/?siteKey=shopA"))
        decision = await gate.activate()

    assert decision.overlay is False
    assert gate.state == GateState.ACTIVE
    assert api.calls == Counter({"flags": 1, "check": 1})


@pytest.mark.asyncio
async def test_canceled_site_shows_overlay():
    api = FakeConsoleApi(status="canceled")
    async with _client(api) as client:
        decision = await AccessGate(client, "shopA", AddressBar(BASE)).activate()

    assert decision.overlay is True
    assert decision.state == GateState.CANCELED


@pytest.mark.asyncio
async def test_no_customer_is_blocked_even_when_status_is_active():
    api = FakeConsoleApi(flags={"isFreePlan": False, "hasCustomer": False}, status="active")
    async with _client(api) as client:
        decision = await AccessGate(client, "shopA", AddressBar(BASE)).activate()

    assert decision.overlay is True


@pytest.mark.asyncio
async def test_flags_and_status_are_fetched_concurrently():
    """Each handler waits for the other request to arrive; a sequential gate would hang."""
    flags_seen = asyncio.Event()
    status_seen = asyncio.Event()

    async def handler(request):
        if request.url.path.endswith("/plan-flags"):
            flags_seen.set()
            await status_seen.wait()
            return httpx.Response(200, json={"isFreePlan": False, "hasCustomer": True})
        status_seen.set()
        await flags_seen.wait()
        return httpx.Response(200, json={"ok": True, "status": "pending_cancel"})

    async with _client(handler) as client:
        gate = AccessGate(client, "shopA", AddressBar(BASE))
        decision = await asyncio.wait_for(gate.activate(), timeout=2)

    assert decision.state == GateState.PENDING_CANCEL
    assert decision.overlay is False


@pytest.mark.asyncio
async def test_teardown_discards_late_results():
    release = asyncio.Event()
    location = AddressBar(f"{BASE}/?session_id=cs_test_1")

    async def handler(request):
        await release.wait()
        if request.url.path.endswith("/plan-flags"):
            return httpx.Response(200, json={"isFreePlan": False, "hasCustomer": True})
        return httpx.Response(200, json={"ok": True, "status": "active"})

    async with _client(handler) as client:
        gate = AccessGate(client, "shopA", location)
        task = asyncio.create_task(gate.activate())
        await asyncio.sleep(0)
        gate.teardown()
        release.set()
        result = await task

    assert result is None
    assert gate.state == GateState.LOADING
    assert gate.decision is None
    assert location.href == f"{BASE}/?session_id=cs_test_1"


@pytest.mark.asyncio
async def test_errors_collapse_to_blocked():
    async def handler(request):
        if request.url.path.endswith("/plan-flags"):
            return httpx.Response(500, json={"error": "boom"})
        raise httpx.ConnectError("offline", request=request)

    async with _client(handler) as client:
        gate = AccessGate(client, "shopA", AddressBar(BASE))
        decision = await gate.activate()

    assert decision.overlay is True
    assert decision.status == "none"
    assert gate.state == GateState.NONE


@pytest.mark.asyncio
async def test_status_error_body_counts_as_none():
    api = FakeConsoleApi(status="active")

    async def handler(request):
        if request.url.path == "/api/stripe/check-subscription":
            return httpx.Response(502, json={"ok": False, "status": "none", "code": "STRIPE_API_UNREACHABLE"})
        return await api(request)

    async with _client(handler) as client:
        decision = await AccessGate(client, "shopA", AddressBar(BASE)).activate()

    assert decision.overlay is True


# =============================================================================
# CHECKOUT REDIRECT
# =============================================================================

@pytest.mark.asyncio
async def test_session_id_is_verified_once_then_stripped():
    api = FakeConsoleApi(status="active", verify_status="active")
    location = AddressBar(f"{BASE}/?siteKey=shopA&session_id=cs_test_1")

    async with _client(api) as client:
        first = await AccessGate(client, "shopA", location).activate()
        # reload of the same view
        second = await AccessGate(client, "shopA", location).activate()

    assert first.overlay is False and second.overlay is False
    assert api.calls["verify"] == 1
    assert api.calls["check"] == 1
    assert location.href == f"{BASE}/?siteKey=shopA"
    assert location.history == [f"{BASE}/?siteKey=shopA"]
    verify_request = next(r for r in api.requests if r.url.path.endswith("verify-subscription"))
    assert verify_request.url.params["session_id"] == "cs_test_1"
    assert verify_request.url.params["siteKey"] == "shopA"


@pytest.mark.asyncio
async def test_failed_verification_still_strips_session_id():
    async def handler(request):
        if request.url.path.endswith("/plan-flags"):
            return httpx.Response(200, json={"isFreePlan": False, "hasCustomer": True})
        return httpx.Response(422, json={"ok": False, "status": "none", "code": "STRIPE_API_HTTP_ERROR"})

    location = AddressBar(f"{BASE}/?session_id=cs_test_bad")
    async with _client(handler) as client:
        decision = await AccessGate(client, "shopA", location).activate()

    assert decision.overlay is True
    assert location.href == f"{BASE}/"


@pytest.mark.asyncio
async def test_start_checkout_returns_url_and_sends_token():
    api = FakeConsoleApi(status="canceled")
    async with _client(api) as client:
        gate = AccessGate(client, "shopA", AddressBar(BASE), id_token="token-1")
        url = await gate.start_checkout()

    assert url == "https://checkout.stripe.com/c/pay/cs_x"
    checkout = next(r for r in api.requests if r.url.path.endswith("create-checkout-session"))
    assert checkout.headers["Authorization"] == "Bearer token-1"


@pytest.mark.asyncio
async def test_start_checkout_already_active_reactivates():
    api = FakeConsoleApi(
        status="active",
        checkout={"ok": True, "siteKey": "shopA", "alreadyActive": True, "subscriptionId": "sub_1"},
    )
    async with _client(api) as client:
        gate = AccessGate(client, "shopA", AddressBar(BASE))
        url = await gate.start_checkout()

    assert url is None
    assert gate.state == GateState.ACTIVE
    assert api.calls["check"] == 1


@pytest.mark.asyncio
async def test_start_checkout_failure_keeps_overlay():
    api = FakeConsoleApi(
        status="canceled",
        checkout=httpx.Response(400, json={"error": "Owner identity missing", "code": "IDENTITY_MISSING", "retryable": False}),
    )
    async with _client(api) as client:
        gate = AccessGate(client, "shopA", AddressBar(BASE))
        await gate.activate()
        url = await gate.start_checkout()

    assert url is None
    assert gate.decision.overlay is True


@pytest.mark.asyncio
async def test_torn_down_gate_stays_detached():
    api = FakeConsoleApi(
        status="active",
        checkout={"ok": True, "siteKey": "shopA", "alreadyActive": True, "subscriptionId": "sub_1"},
    )
    async with _client(api) as client:
        gate = AccessGate(client, "shopA", AddressBar(BASE))
        gate.teardown()
        url = await gate.start_checkout()
        decision = await gate.activate()

    assert url is None and decision is None
    assert gate.detached is True
    assert gate.state == GateState.LOADING
    assert sum(api.calls.values()) == 0


@pytest.mark.asyncio
async def test_teardown_during_checkout_drops_already_active_answer():
    release = asyncio.Event()

    async def handler(request):
        if request.url.path.endswith("create-checkout-session"):
            await release.wait()
            return httpx.Response(200, json={"ok": True, "siteKey": "shopA", "alreadyActive": True})
        raise AssertionError(f"unexpected request {request.url.path}")

    async with _client(handler) as client:
        gate = AccessGate(client, "shopA", AddressBar(BASE))
        task = asyncio.create_task(gate.start_checkout())
        await asyncio.sleep(0)
        gate.teardown()
        release.set()
        url = await task

    assert url is None
    assert gate.state == GateState.LOADING
    assert gate.decision is None
