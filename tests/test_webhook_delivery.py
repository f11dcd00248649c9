from __future__ import annotations

import json
import random

import httpx

from clubify_checkout.cache import InMemoryCache
from clubify_checkout.config import Settings
from clubify_checkout.domain.signatures import verify_signature
from clubify_checkout.events import EventDispatcher
from clubify_checkout.models.webhooks import WebhookEndpoint
from clubify_checkout.observability import metrics_snapshot, reset_metrics
from clubify_checkout.services import webhook_delivery
from clubify_checkout.services.webhook_delivery import (
    CircuitBreaker,
    DeliveryService,
    RetryPolicy,
    RetryService,
    TestingService,
)


class _FakeResponse:
    def __init__(self, status_code: int):
        self.status_code = status_code


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _webhook(**overrides) -> WebhookEndpoint:
    data = {
        "id": "wh_1",
        "url": "https://merchant.example/hooks",
        "secret": "whsec_merchant",
        "events": ["order.created"],
        "organization_id": "org-1",
    }
    data.update(overrides)
    return WebhookEndpoint(**data)


def _install_sender(monkeypatch, statuses):
    sent: list[dict] = []
    answers = iter(statuses)

    def _fake_send(url, body, headers, timeout_seconds):
        sent.append({"url": url, "body": body, "headers": headers, "timeout": timeout_seconds})
        answer = next(answers)
        if isinstance(answer, Exception):
            raise answer
        return _FakeResponse(answer)

    monkeypatch.setattr(webhook_delivery, "_send", _fake_send)
    return sent


def test_delivery_signs_exact_body(monkeypatch):
    sent = _install_sender(monkeypatch, [200])
    clock = FakeClock()
    service = DeliveryService(clock=clock)

    delivery = service.deliver(_webhook(), "order.created", {"id": "o1"}, event_id="evt_1")

    assert delivery.success is True
    assert delivery.status_code == 200
    request = sent[0]
    headers = request["headers"]
    assert request["url"] == "https://merchant.example/hooks"
    assert headers["X-Signature"].startswith("sha256=")
    assert verify_signature(request["body"], headers["X-Signature"], "whsec_merchant")
    assert headers["X-Timestamp"] == "1700000000"
    assert headers["X-Event-Type"] == "order.created"
    assert headers["X-Event-ID"] == "evt_1"
    assert headers["X-Organization-ID"] == "org-1"
    assert json.loads(request["body"]) == {
        "event": "order.created",
        "data": {"id": "o1"},
        "timestamp": 1700000000,
        "id": "evt_1",
    }


def test_delivery_failures_are_returned_not_raised(monkeypatch):
    _install_sender(monkeypatch, [500, httpx.ConnectTimeout("timed out")])
    service = DeliveryService()

    http_failure = service.deliver(_webhook(), "order.created", {})
    network_failure = service.deliver(_webhook(), "order.created", {})

    assert http_failure.success is False
    assert http_failure.error == "HTTP 500"
    assert network_failure.success is False
    assert network_failure.status_code is None
    assert network_failure.error.startswith("connectivity error")


def test_circuit_opens_after_threshold_and_closes_after_cooldown(monkeypatch):
    sent = _install_sender(monkeypatch, [500, 500, 200])
    clock = FakeClock()
    breaker = CircuitBreaker(InMemoryCache(clock=clock), threshold=2, cooldown_seconds=60, clock=clock)
    service = DeliveryService(circuit_breaker=breaker, clock=clock)
    webhook = _webhook()

    service.deliver(webhook, "order.created", {})
    service.deliver(webhook, "order.created", {})
    blocked = service.deliver(webhook, "order.created", {})

    assert blocked.error == "circuit_open"
    assert len(sent) == 2

    clock.now += 61
    recovered = service.deliver(webhook, "order.created", {})
    assert recovered.success is True
    assert breaker.is_open(webhook.id) is False


def test_batch_skips_unsubscribed_and_inactive_endpoints(monkeypatch):
    sent = _install_sender(monkeypatch, [200, 200])
    service = DeliveryService()
    endpoints = [
        _webhook(id="wh_a"),
        _webhook(id="wh_b", events=["payment.approved"]),
        _webhook(id="wh_c", active=False),
        _webhook(id="wh_d", events=["*"]),
    ]

    deliveries = service.deliver_batch(endpoints, "order.created", {"id": "o1"})

    assert [d.webhook_id for d in deliveries] == ["wh_a", "wh_d"]
    assert len(sent) == 2


def test_completed_deliveries_emit_event(monkeypatch):
    _install_sender(monkeypatch, [200])
    events = EventDispatcher()
    seen = []
    events.listen("webhook.delivery.completed", lambda event: seen.append(event.data["delivery"]))

    DeliveryService(events=events).deliver(_webhook(), "order.created", {})
    assert len(seen) == 1
    assert seen[0].success is True


def test_retry_policy_schedules_and_caps():
    rng = random.Random(7)
    exponential = RetryPolicy("exponential", base_delay_seconds=60, max_delay_seconds=3600)
    linear = RetryPolicy("linear", base_delay_seconds=10, max_delay_seconds=100)
    immediate = RetryPolicy("immediate")

    for attempt, step in [(1, 1), (2, 2), (3, 4), (4, 8)]:
        delay = exponential.delay_for(attempt, rng)
        assert step * 60 <= delay <= step * 60 + min(60, step * 6)
    assert exponential.delay_for(5, rng) <= 1056
    assert linear.delay_for(3, rng) == 100
    assert immediate.delay_for(4, rng) == 0


def test_retry_policy_from_settings_falls_back_to_exponential():
    policy = RetryPolicy.from_settings(Settings(webhook_retry_strategy="bogus", webhook_retry_max_attempts=2))
    assert policy.strategy == "exponential"
    assert policy.max_attempts == 2


def test_retry_service_retries_then_dead_letters(monkeypatch):
    sent = _install_sender(monkeypatch, [500, 500, 500])
    clock = FakeClock()
    delivery_service = DeliveryService(
        circuit_breaker=CircuitBreaker(threshold=100, clock=clock),
        clock=clock,
    )
    retries = RetryService(
        delivery_service,
        RetryPolicy("immediate", max_attempts=3),
        clock=clock,
        rng=random.Random(1),
    )
    webhook = _webhook()

    first = delivery_service.deliver(webhook, "order.created", {"id": "o1"}, event_id="evt_9")
    pending = retries.schedule_retry(webhook, first, {"id": "o1"})
    assert pending is not None
    assert pending.attempt == 2
    assert retries.queue_size == 1

    second = retries.process_pending()
    assert [d.attempt for d in second] == [2]
    third = retries.process_pending()
    assert [d.attempt for d in third] == [3]

    assert retries.queue_size == 0
    assert len(retries.dead_letters) == 1
    assert retries.dead_letters[0].event_id == "evt_9"
    assert len(sent) == 3


def test_retry_not_due_stays_queued_and_can_be_cancelled(monkeypatch):
    _install_sender(monkeypatch, [500])
    clock = FakeClock()
    delivery_service = DeliveryService(clock=clock)
    retries = RetryService(delivery_service, RetryPolicy("exponential", base_delay_seconds=60), clock=clock)
    failed = delivery_service.deliver(_webhook(), "order.created", {})

    pending = retries.schedule_retry(_webhook(), failed, {})
    assert retries.process_pending() == []
    assert retries.cancel(pending.id) is True
    assert retries.cancel(pending.id) is False
    assert retries.queue_size == 0


def test_testing_service_sends_webhook_test_event(monkeypatch):
    sent = _install_sender(monkeypatch, [204])
    delivery = TestingService(DeliveryService()).send_test(_webhook(events=["order.created"]))

    assert delivery.success is True
    assert delivery.event_type == "webhook.test"
    assert sent[0]["headers"]["X-Event-Type"] == "webhook.test"
    assert json.loads(sent[0]["body"])["data"]["webhook_id"] == "wh_1"


class _BrokenBackend:
    def get(self, key, default=None):
        raise ConnectionError("cache down")

    def set(self, key, value, ttl):
        raise ConnectionError("cache down")

    def delete(self, key):
        raise ConnectionError("cache down")


def test_delivery_survives_unavailable_breaker_backend(monkeypatch):
    reset_metrics()
    sent = _install_sender(monkeypatch, [500, 200])
    service = DeliveryService(circuit_breaker=CircuitBreaker(_BrokenBackend(), threshold=1))

    failed = service.deliver(_webhook(), "order.created", {})
    delivered = service.deliver(_webhook(), "order.created", {})

    assert failed.success is False
    assert failed.error == "HTTP 500"
    assert delivered.success is True
    assert len(sent) == 2
    assert metrics_snapshot()["cache.unavailable|operation=get"] == 3
    reset_metrics()


def test_endpoint_headers_cannot_replace_signed_headers(monkeypatch):
    sent = _install_sender(monkeypatch, [200])
    service = DeliveryService(clock=FakeClock())
    webhook = _webhook(
        headers={"x-signature": "forged", "X-Timestamp": "0", "X-Merchant-Tag": "vip"},
    )

    service.deliver(webhook, "order.created", {"id": "o1"}, event_id="evt_1")

    headers = sent[0]["headers"]
    assert "x-signature" not in headers
    assert verify_signature(sent[0]["body"], headers["X-Signature"], "whsec_merchant")
    assert headers["X-Timestamp"] == "1700000000"
    assert headers["X-Merchant-Tag"] == "vip"
