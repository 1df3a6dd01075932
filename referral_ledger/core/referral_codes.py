from __future__ import annotations

import re
import secrets

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REFERRAL_CODE_RE = re.compile(r"^[A-Z0-9]{2,12}(-[A-Z0-9]{2,12})?$")


def generate_referral_code(length: int = 8) -> str:
    """Generates a short uppercase referral code with low typo ambiguity.

    Codes of eight or more characters are split into two dash-separated halves
    (``K7QM-3XPA``) so they stay readable when shared by hand.
    """
    if length <= 0:
        raise ValueError("length must be positive")
    raw = "".join(secrets.choice(ALPHABET) for _ in range(length))
    if length < 8:
        return raw
    middle = length // 2
    return f"{raw[:middle]}-{raw[middle:]}"


def normalize_referral_code(raw_code: str | None) -> str | None:
    if raw_code is None:
        return None
    normalized = raw_code.strip().upper()
    if not normalized or REFERRAL_CODE_RE.match(normalized) is None:
        return None
    return normalized


def build_referral_link(*, base_url: str, referral_code: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}ref={referral_code}"
