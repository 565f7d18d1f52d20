"""Site billing profile reads from Firestore (siteSettings/{siteKey}).

Documents are decoded through SiteBillingProfile at this boundary. A
document that does not fit the schema is reported as ProfileDecodeError;
a partially-typed dict never leaves this module.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from google.cloud import firestore
from pydantic import ValidationError

from ..models import SITE_KEY_PATTERN, SiteBillingProfile
from .errors import InvalidRequest, NotFound, ProfileDecodeError

logger = logging.getLogger("console_api.billing.profiles")

SITE_SETTINGS_COLLECTION = "siteSettings"
PROFILE_FIELDS = ("isFreePlan", "setupMode", "stripeCustomerId", "ownerEmail")


def validate_site_key(site_key: Any) -> str:
    if not isinstance(site_key, str) or not SITE_KEY_PATTERN.match(site_key.strip()):
        raise InvalidRequest("siteKey required", code="SITE_KEY_INVALID")
    return site_key.strip()


def decode_profile(site_key: str, data: Optional[Dict[str, Any]]) -> SiteBillingProfile:
    """Build a typed profile from raw document data.

    Only billing fields are read; the rest of the site settings document
    (name, branding, tax mode, ...) belongs to other parts of the console.
    """
    raw = data or {}
    fields = {name: raw[name] for name in PROFILE_FIELDS if raw.get(name) is not None}
    try:
        return SiteBillingProfile(siteKey=site_key, **fields)
    except ValidationError as exc:
        bad_fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        logger.error("Profile decode failed site=%s fields=%s", site_key, bad_fields)
        raise ProfileDecodeError(
            "Site billing profile is malformed",
            details={"siteKey": site_key, "fields": bad_fields},
        ) from exc


class SiteProfileStore:
    """One-shot reads of site billing profiles."""

    def __init__(self, db: firestore.Client):
        self.db = db

    def get(self, site_key: str) -> SiteBillingProfile:
        site_key = validate_site_key(site_key)
        doc = self.db.collection(SITE_SETTINGS_COLLECTION).document(site_key).get()
        if not doc.exists:
            raise NotFound("siteKey not found", details={"siteKey": site_key})
        return decode_profile(site_key, doc.to_dict())

    def find(self, site_key: str) -> Optional[SiteBillingProfile]:
        try:
            return self.get(site_key)
        except NotFound:
            return None
