from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Sequence, Union

from clubify_checkout.domain.replay import DEFAULT_TOLERANCE_SECONDS, check_timestamp, parse_timestamp
from clubify_checkout.domain.secrets import (
    SecretLookup,
    SecretResolver,
    SecretResolverHook,
    WebhookSecret,
)
from clubify_checkout.domain.signatures import verify_signature
from clubify_checkout.domain.webhook_request import WebhookRequest
from clubify_checkout.errors import RejectionReason, WebhookRejection
from clubify_checkout.observability import incr_metric, log_event


REQUIRED_FIELDS: tuple[str, ...] = ("event", "data", "timestamp")


@dataclass(frozen=True)
class Accepted:
    payload: dict[str, Any]
    event: str
    data: Any
    timestamp: float
    webhook_id: str | None = None
    organization_id: str | None = None
    secret_scope: str | None = None
    received_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    message: str
    field: str | None = None

    @property
    def ok(self) -> bool:
        return False


ValidationResult = Union[Accepted, Rejected]


class WebhookValidator:
    """
    Gate for inbound webhooks.

    Stages run in order and stop at the first failure: secret resolution,
    HMAC-SHA256 signature, replay window on the timestamp header, JSON
    decoding, required top-level fields. The only I/O is the organization
    secret lookup, so a request can be validated again safely.
    """

    def __init__(
        self,
        secret_resolver: SecretResolver,
        *,
        tolerance_seconds: float = DEFAULT_TOLERANCE_SECONDS,
        required_fields: Sequence[str] = REQUIRED_FIELDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.secret_resolver = secret_resolver
        self.tolerance_seconds = tolerance_seconds
        self.required_fields = tuple(required_fields)
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        config: Any,
        *,
        organization_lookup: SecretLookup | None = None,
        resolver_hook: SecretResolverHook | None = None,
        clock: Callable[[], float] = time.time,
    ) -> "WebhookValidator":
        resolver = SecretResolver(
            global_secret=config.webhook_secret,
            organization_lookup=organization_lookup,
            resolver_hook=resolver_hook,
        )
        return cls(resolver, tolerance_seconds=config.webhook_tolerance_seconds, clock=clock)

    def validate(self, request: WebhookRequest) -> ValidationResult:
        try:
            secret = self.secret_resolver.resolve(request)
            self._check_signature(request, secret)
            check_timestamp(self._timestamp_header(request), self._clock(), self.tolerance_seconds)
            payload = self._decode(request)
            self._check_structure(payload)
        except WebhookRejection as rejection:
            return self._reject(request, rejection)

        accepted = Accepted(
            payload=payload,
            event=payload["event"],
            data=payload["data"],
            timestamp=parse_timestamp(payload["timestamp"]),
            webhook_id=str(payload["id"]) if payload.get("id") is not None else None,
            organization_id=secret.organization_id,
            secret_scope=secret.scope,
        )
        incr_metric("webhook.validation.accepted", secret_scope=secret.scope)
        log_event(
            "webhook_accepted",
            request_id=request.request_id,
            event_type=accepted.event,
            webhook_id=accepted.webhook_id,
            organization_id=accepted.organization_id,
            secret_scope=secret.scope,
        )
        return accepted

    def _check_signature(self, request: WebhookRequest, secret: WebhookSecret) -> None:
        if not request.signature:
            raise WebhookRejection(RejectionReason.INVALID_SIGNATURE, "Missing webhook signature")
        if not request.body:
            raise WebhookRejection(RejectionReason.INVALID_SIGNATURE, "Empty webhook body")
        if not verify_signature(request.body, request.signature, secret.value):
            raise WebhookRejection(RejectionReason.INVALID_SIGNATURE, "Invalid webhook signature")

    @staticmethod
    def _timestamp_header(request: WebhookRequest) -> str:
        if not request.timestamp:
            raise WebhookRejection(
                RejectionReason.MALFORMED_PAYLOAD,
                "Missing webhook timestamp header",
            )
        return request.timestamp

    @staticmethod
    def _decode(request: WebhookRequest) -> dict[str, Any]:
        try:
            payload = json.loads(request.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise WebhookRejection(
                RejectionReason.MALFORMED_PAYLOAD,
                f"Invalid JSON payload: {exc}",
            ) from exc
        except RecursionError as exc:
            raise WebhookRejection(RejectionReason.MALFORMED_PAYLOAD, "JSON payload nested too deeply") from exc
        if not isinstance(payload, dict):
            raise WebhookRejection(RejectionReason.MALFORMED_PAYLOAD, "Webhook payload must be a JSON object")
        return payload

    def _check_structure(self, payload: dict[str, Any]) -> None:
        for name in self.required_fields:
            if payload.get(name) is None:
                raise WebhookRejection(
                    RejectionReason.MISSING_FIELD,
                    f"Missing required field: {name}",
                    field=name,
                )
        event = payload.get("event")
        if not isinstance(event, str) or not event.strip():
            raise WebhookRejection(RejectionReason.MALFORMED_PAYLOAD, "Invalid event type", field="event")
        if parse_timestamp(payload.get("timestamp")) is None:
            raise WebhookRejection(
                RejectionReason.MALFORMED_PAYLOAD,
                "Invalid timestamp in payload",
                field="timestamp",
            )

    @staticmethod
    def _reject(request: WebhookRequest, rejection: WebhookRejection) -> Rejected:
        level = logging.INFO
        event = "webhook_rejected"
        if rejection.reason == RejectionReason.INVALID_SIGNATURE:
            level = logging.WARNING
            event = "webhook_signature_invalid"
        elif rejection.reason == RejectionReason.NO_SECRET_CONFIGURED:
            level = logging.ERROR
        incr_metric("webhook.validation.rejected", reason=rejection.reason.value)
        log_event(
            event,
            level=level,
            request_id=request.request_id,
            source_ip=request.source_ip,
            organization_id=request.organization_id,
            reason=rejection.reason.value,
            field=rejection.field,
            message=rejection.message,
        )
        return Rejected(reason=rejection.reason, message=rejection.message, field=rejection.field)
