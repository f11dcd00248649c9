from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from clubify_checkout.config import settings
from clubify_checkout.domain.webhook_request import WebhookRequest
from clubify_checkout.domain.webhook_validation import Rejected, WebhookValidator
from clubify_checkout.errors import RejectionReason, SecretResolutionError
from clubify_checkout.events import EventDispatcher
from clubify_checkout.models.webhooks import InboundWebhookResponse
from clubify_checkout.observability import incr_metric, log_event


router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

_REJECTION_STATUS: dict[RejectionReason, int] = {
    RejectionReason.INVALID_SIGNATURE: status.HTTP_401_UNAUTHORIZED,
    RejectionReason.EXPIRED_TIMESTAMP: status.HTTP_401_UNAUTHORIZED,
    RejectionReason.FUTURE_TIMESTAMP: status.HTTP_401_UNAUTHORIZED,
    RejectionReason.MALFORMED_PAYLOAD: status.HTTP_400_BAD_REQUEST,
    RejectionReason.MISSING_FIELD: status.HTTP_400_BAD_REQUEST,
    RejectionReason.NO_SECRET_CONFIGURED: status.HTTP_503_SERVICE_UNAVAILABLE,
}
_dispatcher = EventDispatcher()


def get_webhook_validator() -> WebhookValidator:
    return WebhookValidator.from_settings(settings)


def get_event_dispatcher() -> EventDispatcher:
    return _dispatcher


def _request_id(request: Request | None) -> str | None:
    if not request:
        return None
    return getattr(getattr(request, "state", None), "request_id", None)


def _rejection_error(rejected: Rejected) -> HTTPException:
    detail: dict[str, Any] = {
        "type": "webhook_rejected",
        "reason": rejected.reason.value,
        "message": rejected.message,
    }
    if rejected.field:
        detail["field"] = rejected.field
    return HTTPException(
        status_code=_REJECTION_STATUS.get(rejected.reason, status.HTTP_400_BAD_REQUEST),
        detail=detail,
    )


@router.post("/clubify", response_model=InboundWebhookResponse)
async def ingest_clubify_webhook(
    request: Request,
    validator: WebhookValidator = Depends(get_webhook_validator),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
):
    req_id = _request_id(request)
    raw_body = await request.body()
    incr_metric("webhook.events.received", provider_slug="clubify")
    webhook_request = WebhookRequest.from_headers(
        raw_body,
        request.headers,
        signature_header=settings.webhook_signature_header,
        timestamp_header=settings.webhook_timestamp_header,
        organization_header=settings.webhook_organization_header,
        request_id=req_id,
        source_ip=request.client.host if request.client else None,
    )

    try:
        result = validator.validate(webhook_request)
    except SecretResolutionError as exc:
        incr_metric("webhook.events.failed", provider_slug="clubify")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "type": "webhook_ingress_configuration_error",
                "reason": "secret_resolution_failed",
                "message": str(exc),
            },
        ) from exc

    if isinstance(result, Rejected):
        raise _rejection_error(result)

    event_data = {
        "event": result.event,
        "data": result.data,
        "webhook_id": result.webhook_id,
        "organization_id": result.organization_id,
        "request_id": req_id,
    }
    try:
        dispatcher.emit("webhook.received", event_data)
        dispatcher.emit(f"webhook.{result.event}", event_data)
    except Exception:
        incr_metric("webhook.events.failed", provider_slug="clubify")
        log_event(
            "webhook_failed",
            level=logging.ERROR,
            request_id=req_id,
            provider_slug="clubify",
            event_type=result.event,
            webhook_id=result.webhook_id,
        )
        raise
    incr_metric("webhook.events.processed", provider_slug="clubify")
    return InboundWebhookResponse(
        status="accepted",
        event=result.event,
        webhook_id=result.webhook_id,
        organization_id=result.organization_id,
    )
