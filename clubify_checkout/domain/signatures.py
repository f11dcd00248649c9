from __future__ import annotations

import hashlib
import hmac


SIGNATURE_ALGORITHM = "sha256"
_SIGNATURE_PREFIX = f"{SIGNATURE_ALGORITHM}="


def compute_signature(raw_body: bytes, secret: str) -> str:
    """HMAC-SHA256 of the raw body keyed by ``secret``, lowercase hex."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def signature_header_value(raw_body: bytes, secret: str) -> str:
    return f"{_SIGNATURE_PREFIX}{compute_signature(raw_body, secret)}"


def _strip_prefix(signature: str) -> str | None:
    value = signature.strip()
    if "=" not in value:
        return value
    algorithm, _, digest = value.partition("=")
    if algorithm.strip().lower() != SIGNATURE_ALGORITHM:
        return None
    return digest.strip()


def verify_signature(raw_body: bytes, provided_signature: str | None, secret: str | None) -> bool:
    """
    Check ``provided_signature`` against the HMAC-SHA256 of ``raw_body``.

    Accepts the bare hex digest or the ``sha256=<hex>`` form. Returns False
    without comparing when the header, body or secret is missing.
    """
    if not provided_signature or not raw_body or not secret:
        return False
    digest = _strip_prefix(provided_signature)
    if not digest:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected.encode("ascii"), digest.encode("utf-8"))
