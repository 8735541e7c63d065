"""Static access-code table consulted at sign-up."""

from __future__ import annotations

from dataclasses import dataclass

from .models import normalize_email


@dataclass(frozen=True)
class AccessGrant:
    status: str
    role: str
    label: str


_ACCESS_KEYS: dict[str, AccessGrant] = {
    "OWNER_MASTER": AccessGrant(status="active", role="owner", label="System owner"),
    "MASTER_KEY": AccessGrant(status="active", role="user", label="General key"),
    "PROMO2025": AccessGrant(status="active", role="user", label="2025 campaign"),
    "BETA_TESTER": AccessGrant(status="trial", role="user", label="Beta test group"),
}


def validate_code(code: str | None) -> AccessGrant | None:
    """Return the grant for an access code, or None if the code is unknown.

    Codes are matched case-insensitively, ignoring surrounding whitespace.
    """
    return _ACCESS_KEYS.get((code or "").strip().upper())


def is_admin(email: str, admin_emails: list[str]) -> bool:
    """Check an email against the configured admin list."""
    return normalize_email(email) in {normalize_email(e) for e in admin_emails}
