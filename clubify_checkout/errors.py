from __future__ import annotations

from enum import Enum


class RejectionReason(str, Enum):
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED_TIMESTAMP = "expired_timestamp"
    FUTURE_TIMESTAMP = "future_timestamp"
    MALFORMED_PAYLOAD = "malformed_payload"
    MISSING_FIELD = "missing_field"
    NO_SECRET_CONFIGURED = "no_secret_configured"


class ClubifyCheckoutError(Exception):
    """Base class for SDK errors."""


class WebhookRejection(ClubifyCheckoutError):
    """Raised by a validation stage; the pipeline turns it into a Rejected result."""

    def __init__(self, reason: RejectionReason, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.field = field


class SecretResolutionError(ClubifyCheckoutError):
    """A configured secret resolver hook failed."""
