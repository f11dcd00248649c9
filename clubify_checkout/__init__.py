__version__ = "1.0.0"

from clubify_checkout.domain.webhook_request import WebhookRequest  # noqa: E402
from clubify_checkout.domain.webhook_validation import Accepted, Rejected, WebhookValidator  # noqa: E402
from clubify_checkout.errors import (  # noqa: E402
    ClubifyCheckoutError,
    RejectionReason,
    SecretResolutionError,
    WebhookRejection,
)
from clubify_checkout.sdk import ClubifyCheckout  # noqa: E402

__all__ = [
    "__version__",
    "Accepted",
    "ClubifyCheckout",
    "ClubifyCheckoutError",
    "Rejected",
    "RejectionReason",
    "SecretResolutionError",
    "WebhookRejection",
    "WebhookRequest",
    "WebhookValidator",
]
