from __future__ import annotations

import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from clubify_checkout.errors import RejectionReason, WebhookRejection


DEFAULT_TOLERANCE_SECONDS = 300


def _as_epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def parse_timestamp(value: Any) -> float | None:
    """Epoch seconds from a number, numeric string, ISO-8601 or RFC 2822 date; None if unparsable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, datetime):
        return _as_epoch(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        pass
    else:
        return number if math.isfinite(number) else None
    try:
        return _as_epoch(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None
    return _as_epoch(parsed) if parsed is not None else None


def check_timestamp(
    declared: Any,
    now: float,
    tolerance_seconds: float = DEFAULT_TOLERANCE_SECONDS,
) -> float:
    """
    Enforce the symmetric replay window around ``now``.

    Returns the declared time as epoch seconds when it is within
    ``tolerance_seconds`` of ``now``; raises WebhookRejection otherwise.
    """
    parsed = parse_timestamp(declared)
    if parsed is None:
        raise WebhookRejection(
            RejectionReason.MALFORMED_PAYLOAD,
            "Webhook timestamp is not a valid epoch or date",
        )
    tolerance = max(0.0, float(tolerance_seconds))
    if now - parsed > tolerance:
        raise WebhookRejection(
            RejectionReason.EXPIRED_TIMESTAMP,
            "Webhook timestamp is older than the accepted tolerance window",
        )
    if parsed - now > tolerance:
        raise WebhookRejection(
            RejectionReason.FUTURE_TIMESTAMP,
            "Webhook timestamp is ahead of the accepted tolerance window",
        )
    return parsed
