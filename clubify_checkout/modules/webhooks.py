from __future__ import annotations

import secrets
from typing import Any

from clubify_checkout.cache import CacheAside, InMemoryCache
from clubify_checkout.config import Settings, settings
from clubify_checkout.domain.secrets import SecretLookup, SecretResolverHook
from clubify_checkout.domain.webhook_validation import WebhookValidator
from clubify_checkout.events import EventDispatcher
from clubify_checkout.models.webhooks import WebhookCreateRequest, WebhookEndpoint
from clubify_checkout.modules.base import BaseModule
from clubify_checkout.providers.checkout.client import CheckoutApiClient
from clubify_checkout.repository import ResourceRepository, ResourceConfig, unwrap_data
from clubify_checkout.services.webhook_delivery import (
    CircuitBreaker,
    Delivery,
    DeliveryService,
    RetryPolicy,
    RetryService,
    TestingService,
)


WEBHOOK_CONFIGS = ResourceConfig(name="webhook", endpoint="webhooks/configurations", ttl=600)


def _endpoint(config: WebhookEndpoint | dict[str, Any]) -> WebhookEndpoint:
    if isinstance(config, WebhookEndpoint):
        return config
    return WebhookEndpoint.model_validate(unwrap_data(config))


class WebhooksModule(BaseModule):
    """Webhook configuration on the Checkout API plus outbound delivery, retries and testing."""

    name = "webhooks"

    def __init__(
        self,
        client: CheckoutApiClient,
        cache: CacheAside,
        events: EventDispatcher | None = None,
        *,
        config: Settings | None = None,
    ) -> None:
        super().__init__(client, cache, events)
        self.config = config or settings
        self._delivery: DeliveryService | None = None
        self._retries: RetryService | None = None
        self._testing: TestingService | None = None

    @property
    def configurations(self) -> ResourceRepository:
        return self.repository(WEBHOOK_CONFIGS)

    # services

    @property
    def delivery(self) -> DeliveryService:
        if self._delivery is None:
            breaker = CircuitBreaker(
                self.cache.backend if self.cache.backend is not None else InMemoryCache(),
                threshold=self.config.webhook_circuit_breaker_threshold,
                cooldown_seconds=self.config.webhook_circuit_breaker_cooldown_seconds,
            )
            self._delivery = DeliveryService(circuit_breaker=breaker, events=self.events)
        return self._delivery

    @property
    def retries(self) -> RetryService:
        if self._retries is None:
            self._retries = RetryService(self.delivery, RetryPolicy.from_settings(self.config))
        return self._retries

    @property
    def testing(self) -> TestingService:
        if self._testing is None:
            self._testing = TestingService(self.delivery)
        return self._testing

    # configuration

    def create_webhook(self, request: WebhookCreateRequest | dict[str, Any]) -> dict[str, Any]:
        if not isinstance(request, WebhookCreateRequest):
            request = WebhookCreateRequest.model_validate(request)
        payload = request.model_dump(mode="json")
        if not payload.get("secret"):
            payload["secret"] = self.generate_secret()
        return self.configurations.create(payload)

    def get_webhook(self, webhook_id: str) -> dict[str, Any] | None:
        return self.configurations.find_by_id(webhook_id)

    def update_webhook(self, webhook_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return self.configurations.patch(webhook_id, data)

    def delete_webhook(self, webhook_id: str) -> bool:
        return self.configurations.delete(webhook_id)

    def list_webhooks(self, filters: dict[str, Any] | None = None, limit: int = 100, offset: int = 0) -> Any:
        return self.configurations.find_all(limit=limit, offset=offset, filters=filters)

    def activate_webhook(self, webhook_id: str) -> Any:
        return self.configurations.action(webhook_id, "activate", method="PATCH", event="activated")

    def deactivate_webhook(self, webhook_id: str) -> Any:
        return self.configurations.action(webhook_id, "deactivate", method="PATCH", event="deactivated")

    def find_by_event(self, event_type: str) -> Any:
        return self.configurations.find_by({"event": event_type})

    def find_by_organization(self, organization_id: str) -> Any:
        return self.configurations.find_by({"organization_id": organization_id})

    def get_webhook_stats(self, webhook_id: str | None = None) -> Any:
        return self.configurations.get_stats({"webhook_id": webhook_id} if webhook_id else None)

    @staticmethod
    def generate_secret() -> str:
        return secrets.token_hex(32)

    # delivery

    def deliver(
        self,
        event_type: str,
        event_data: dict[str, Any],
        webhooks: list[WebhookEndpoint | dict[str, Any]],
        *,
        retry: bool = True,
    ) -> list[Delivery]:
        """Deliver one event to every subscribed endpoint; failures are queued for retry."""
        endpoints = [_endpoint(webhook) for webhook in webhooks]
        deliveries = self.delivery.deliver_batch(endpoints, event_type, event_data)
        if retry:
            by_id = {endpoint.id: endpoint for endpoint in endpoints}
            for delivery in deliveries:
                if not delivery.success:
                    self.retries.schedule_retry(by_id[delivery.webhook_id], delivery, event_data)
        return deliveries

    def test_webhook(self, webhook: WebhookEndpoint | dict[str, Any], data: dict[str, Any] | None = None) -> Delivery:
        return self.testing.send_test(_endpoint(webhook), data)

    def process_retries(self, limit: int = 100) -> list[Delivery]:
        return self.retries.process_pending(limit)

    def validator(
        self,
        *,
        organization_lookup: SecretLookup | None = None,
        resolver_hook: SecretResolverHook | None = None,
    ) -> WebhookValidator:
        return WebhookValidator.from_settings(
            self.config,
            organization_lookup=organization_lookup,
            resolver_hook=resolver_hook,
        )
