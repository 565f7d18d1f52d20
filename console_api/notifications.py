"""Order-completion push notifications.

When an order's isComp flag flips from false to true, the customer who
placed it gets an FCM push linking back to the storefront:

    {clientBaseUrl}/?siteKey=<key>&done=<orderNo>

Delivery is at-least-once. A trigger that fires twice sends twice; nothing
here deduplicates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set
from urllib.parse import quote

from firebase_admin import messaging

logger = logging.getLogger("console_api.notifications")

NOTIFICATION_TITLE = "ご注文ができあがりました！"
NOTIFICATION_BODY = "注文番号 {order_no} をお受け取りください"
ICON_PATH = "/icons/icon-192x192.png"
BADGE_PATH = "/icons/badge-72x72.png"


@dataclass(frozen=True)
class OrderCompletionEvent:
    order_id: str
    site_key: str
    order_no: int
    push_token: str


def _order_no(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def detect_completion(
    order_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
) -> Optional[OrderCompletionEvent]:
    """Return an event only for a false -> true isComp transition with a push token."""
    if before is None or after is None:
        return None
    if bool(before.get("isComp")) == bool(after.get("isComp")):
        return None
    if not after.get("isComp"):
        return None

    token = after.get("customerFcmToken")
    if not token or not isinstance(token, str):
        return None

    return OrderCompletionEvent(
        order_id=order_id,
        site_key=str(after.get("siteKey") or ""),
        order_no=_order_no(after.get("orderNo")),
        push_token=token,
    )


def completion_link(client_base_url: str, event: OrderCompletionEvent) -> str:
    return f"{client_base_url.rstrip('/')}/?siteKey={quote(event.site_key, safe='')}&done={event.order_no}"


def build_message(event: OrderCompletionEvent, client_base_url: str) -> messaging.Message:
    return messaging.Message(
        token=event.push_token,
        notification=messaging.Notification(
            title=NOTIFICATION_TITLE,
            body=NOTIFICATION_BODY.format(order_no=event.order_no),
        ),
        webpush=messaging.WebpushConfig(
            notification=messaging.WebpushNotification(icon=ICON_PATH, badge=BADGE_PATH),
            fcm_options=messaging.WebpushFCMOptions(link=completion_link(client_base_url, event)),
        ),
        data={"siteKey": event.site_key, "done": str(event.order_no)},
    )


def send_completion_push(event: OrderCompletionEvent, client_base_url: str, app=None) -> str:
    """Send the push; returns the FCM message id. Errors propagate to the caller."""
    message_id = messaging.send(build_message(event, client_base_url), app=app)
    logger.info(
        "Order completion push sent order=%s site=%s orderNo=%s messageId=%s",
        event.order_id,
        event.site_key,
        event.order_no,
        message_id,
    )
    return message_id


class CompletionTracker:
    """Turns a stream of order snapshots into completion events.

    Snapshot listeners deliver only the new state, so the tracker keeps the
    ids of orders last seen open. An order leaves the set once it completes
    (or is removed), so memory stays bounded by the number of open orders.
    The first sighting of an order never produces an event.
    """

    def __init__(self):
        self._open: Set[str] = set()

    def __len__(self) -> int:
        return len(self._open)

    def observe(self, order_id: str, data: Dict[str, Any]) -> Optional[OrderCompletionEvent]:
        if not data.get("isComp"):
            self._open.add(order_id)
            return None
        if order_id not in self._open:
            return None
        self._open.discard(order_id)
        return detect_completion(order_id, {"isComp": False}, data)

    def forget(self, order_id: str) -> None:
        self._open.discard(order_id)
