from __future__ import annotations

import hashlib
import hmac

from clubify_checkout.domain.signatures import compute_signature, signature_header_value, verify_signature


BODY = b'{"event":"order.created","data":{"id":"o1"},"timestamp":1700000000}'


def test_compute_signature_is_hmac_sha256_hex():
    expected = hmac.new(b"whsec_1", BODY, hashlib.sha256).hexdigest()
    assert compute_signature(BODY, "whsec_1") == expected
    assert signature_header_value(BODY, "whsec_1") == f"sha256={expected}"


def test_verify_accepts_own_signature_for_varied_inputs():
    samples = [
        (b"{}", "s"),
        (BODY, "whsec_1"),
        ("{\"nome\":\"José\"}".encode("utf-8"), "segredo-ç"),
        (b"x" * 4096, "k" * 64),
    ]
    for body, secret in samples:
        assert verify_signature(body, compute_signature(body, secret), secret) is True
        assert verify_signature(body, signature_header_value(body, secret), secret) is True


def test_verify_rejects_signature_from_other_secret():
    signature = compute_signature(BODY, "secret-one")
    assert verify_signature(BODY, signature, "secret-two") is False


def test_verify_rejects_tampered_body():
    signature = compute_signature(BODY, "whsec_1")
    assert verify_signature(BODY.replace(b"o1", b"o2"), signature, "whsec_1") is False


def test_verify_fails_closed_on_missing_inputs():
    signature = compute_signature(BODY, "whsec_1")
    assert verify_signature(BODY, None, "whsec_1") is False
    assert verify_signature(BODY, "", "whsec_1") is False
    assert verify_signature(b"", signature, "whsec_1") is False
    assert verify_signature(BODY, signature, None) is False
    assert verify_signature(BODY, signature, "") is False


def test_verify_rejects_other_algorithm_prefix():
    digest = compute_signature(BODY, "whsec_1")
    assert verify_signature(BODY, f"sha1={digest}", "whsec_1") is False
    assert verify_signature(BODY, f"SHA256={digest}", "whsec_1") is True
    assert verify_signature(BODY, "sha256=", "whsec_1") is False


def test_verify_is_case_sensitive_on_digest():
    digest = compute_signature(BODY, "whsec_1")
    assert verify_signature(BODY, digest.upper(), "whsec_1") is False
