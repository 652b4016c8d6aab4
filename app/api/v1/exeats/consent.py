"""Consent token generation and the parent-facing links built from it."""

import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

CONSENT_PATH = "/api/parent/exeat-consent"


def generate_consent_token() -> str:
    """Unguessable, URL-safe token (256 bits from the OS CSPRNG)."""
    return secrets.token_urlsafe(32)


def consent_expiry(ttl_hours: int, now: Optional[datetime] = None) -> datetime:
    return (now or datetime.utcnow()) + timedelta(hours=ttl_hours)


def consent_links(base_url: str, token: str) -> Tuple[str, str]:
    """(approve_link, decline_link) for the parent email."""
    base = f"{base_url.rstrip('/')}{CONSENT_PATH}/{token}"
    return f"{base}/approve", f"{base}/reject"
