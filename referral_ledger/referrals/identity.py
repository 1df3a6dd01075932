from __future__ import annotations

import re

from referral_ledger.referrals.constants import DEFAULT_PRODUCT_CONTEXT

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PRODUCT_CONTEXT_RE = re.compile(r"^[a-z0-9][a-z0-9_.-]{0,31}$")


def normalize_referred_identity(raw_identity: str | None) -> str | None:
    if raw_identity is None:
        return None
    normalized = raw_identity.strip().lower()
    if not normalized or len(normalized) > 320:
        return None
    return normalized


def is_email_identity(identity: str) -> bool:
    return EMAIL_RE.match(identity) is not None


def normalize_product_context(raw_context: str | None) -> str | None:
    if raw_context is None:
        return DEFAULT_PRODUCT_CONTEXT
    normalized = raw_context.strip().lower()
    if not normalized:
        return DEFAULT_PRODUCT_CONTEXT
    if PRODUCT_CONTEXT_RE.match(normalized) is None:
        return None
    return normalized
