from __future__ import annotations

import hashlib
import hmac

BILLING_SIGNATURE_HEADER = "Billing-Signature"


def compute_billing_signature(*, body: bytes, secret: str) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        body,
        hashlib.sha256,
    )
    return digest.hexdigest()


def is_valid_billing_signature(*, body: bytes, secret: str, received_signature: str | None) -> bool:
    if not secret or not received_signature:
        return False
    candidate = received_signature.strip().lower()
    if candidate.startswith("sha256="):
        candidate = candidate[len("sha256=") :]
    expected = compute_billing_signature(body=body, secret=secret)
    return hmac.compare_digest(expected, candidate)
