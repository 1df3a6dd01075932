from __future__ import annotations

import hashlib
import hmac

from referral_ledger.services.billing_signatures import (
    compute_billing_signature,
    is_valid_billing_signature,
)

BODY = b'{"event_type":"subscription.activated","referred_identity":"friend@example.com"}'


def test_compute_billing_signature_is_hex_hmac_sha256() -> None:
    expected = hmac.new(b"whsec", BODY, hashlib.sha256).hexdigest()
    assert compute_billing_signature(body=BODY, secret="whsec") == expected


def test_is_valid_billing_signature_accepts_plain_and_prefixed_digest() -> None:
    signature = compute_billing_signature(body=BODY, secret="whsec")
    assert is_valid_billing_signature(body=BODY, secret="whsec", received_signature=signature) is True
    assert (
        is_valid_billing_signature(
            body=BODY,
            secret="whsec",
            received_signature=f"sha256={signature.upper()}",
        )
        is True
    )


def test_is_valid_billing_signature_rejects_tampered_body_or_missing_inputs() -> None:
    signature = compute_billing_signature(body=BODY, secret="whsec")
    assert (
        is_valid_billing_signature(body=BODY + b" ", secret="whsec", received_signature=signature)
        is False
    )
    assert is_valid_billing_signature(body=BODY, secret="other", received_signature=signature) is False
    assert is_valid_billing_signature(body=BODY, secret="", received_signature=signature) is False
    assert is_valid_billing_signature(body=BODY, secret="whsec", received_signature=None) is False
