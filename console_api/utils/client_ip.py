"""Client IP extraction for rate limiting.

Proxy headers (X-Forwarded-For, X-Real-IP) are only trusted when
TRUST_PROXY is set, e.g. behind the hosting platform's edge. Otherwise a
client could pick its own rate-limit bucket.
"""

from __future__ import annotations

import os

from fastapi import Request

TRUST_PROXY = os.environ.get("TRUST_PROXY", "").lower() in ("1", "true")


def get_client_ip(request: Request) -> str:
    if TRUST_PROXY:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
