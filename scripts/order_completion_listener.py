"""Order completion listener - pushes "your order is ready" notifications.

Watches the `orders` collection. When an order's isComp flips false -> true
the customer's device (customerFcmToken on the order) gets an FCM push
that deep-links back to the storefront. Orders already complete when the
listener starts are not re-announced.

Usage:
    python scripts/order_completion_listener.py --serviceAccount /path/to/sa.json
"""

from __future__ import annotations

import argparse
import os
import socket
import time

import firebase_admin
from firebase_admin import credentials
from google.cloud import firestore  # type: ignore

from console_api.config import BillingConfig
from console_api.notifications import CompletionTracker, send_completion_push

WORKER_ID = f"order-complete-{socket.gethostname()}-{os.getpid()}"


def watch_orders(sa_path: str):
    """Watch orders collection using real-time on_snapshot."""
    config = BillingConfig.from_env()
    app = firebase_admin.initialize_app(credentials.Certificate(sa_path), name=WORKER_ID)
    db = firestore.Client.from_service_account_json(sa_path)
    tracker = CompletionTracker()

    print(f"\n🎧 Order Completion Listener")
    print(f"   Worker ID: {WORKER_ID}")
    print(f"   Deep links: {config.client_base_url}")
    print(f"   Watching: orders/*")
    print(f"\n   Press Ctrl+C to stop\n")

    def on_snapshot(col_snapshot, changes, read_time):
        """Handle collection changes."""
        for change in changes:
            doc = change.document
            if change.type.name == "REMOVED":
                tracker.forget(doc.id)
                continue

            event = tracker.observe(doc.id, doc.to_dict() or {})
            if event is None:
                continue

            try:
                send_completion_push(event, config.client_base_url, app=app)
                print(f"  📲 order={doc.id} site={event.site_key} no={event.order_no} pushed")
            except Exception as e:
                print(f"  ❌ Push failed for order {doc.id}: {e}")

    watcher = db.collection("orders").on_snapshot(on_snapshot)

    try:
        while True:
            time.sleep(60)  # Keep process alive
    except KeyboardInterrupt:
        print("\n\n👋 Stopping listener...")
        watcher.unsubscribe()


# =============================================================================
# CLI Entry Point
# =============================================================================

if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Order completion listener - sends FCM pushes when orders complete",
    )
    parser.add_argument('--serviceAccount', required=True, help='Path to Firebase service account JSON')
    args = parser.parse_args()

    watch_orders(args.serviceAccount)
