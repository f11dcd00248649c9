from __future__ import annotations

import json
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable

import httpx

from clubify_checkout.cache import CacheBackend, InMemoryCache
from clubify_checkout.domain.signatures import signature_header_value
from clubify_checkout.events import EventDispatcher
from clubify_checkout.models.webhooks import RetryStrategyName, WebhookEndpoint
from clubify_checkout.observability import incr_metric, log_event
from clubify_checkout.providers.checkout.client import USER_AGENT


# Multiples of the base delay per attempt; attempts past the end reuse the last step.
RETRY_SCHEDULES: dict[str, tuple[int, ...]] = {
    "immediate": (0,),
    "linear": (1, 5, 15),
    "exponential": (1, 2, 4, 8, 16),
    "fibonacci": (1, 1, 2, 3, 5, 8),
}
_MAX_JITTER_SECONDS = 60


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Delivery:
    id: str
    webhook_id: str
    event_type: str
    event_id: str
    attempt: int = 1
    success: bool = False
    status_code: int | None = None
    response_time: float = 0.0
    error: str | None = None
    timestamp: str = field(default_factory=_now_iso)


def build_payload(event_type: str, event_data: dict[str, Any], *, event_id: str, timestamp: int) -> dict[str, Any]:
    return {"event": event_type, "data": event_data, "timestamp": timestamp, "id": event_id}


def encode_payload(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def _send(url: str, body: bytes, headers: dict[str, str], timeout_seconds: float) -> httpx.Response:
    with httpx.Client(timeout=timeout_seconds) as client:
        return client.post(url, content=body, headers=headers)


def _cache_unavailable(operation: str, key: str, exc: Exception) -> None:
    # Breaker state is best effort; an unreadable circuit counts as closed.
    incr_metric("cache.unavailable", operation=operation)
    log_event("cache_unavailable", level=logging.WARNING, operation=operation, key=key, error=str(exc))


class CircuitBreaker:
    """Consecutive-failure breaker per webhook, state kept in a cache backend."""

    def __init__(
        self,
        backend: CacheBackend | None = None,
        *,
        threshold: int = 5,
        cooldown_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend if backend is not None else InMemoryCache()
        self.threshold = max(1, threshold)
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock

    def _key(self, webhook_id: str) -> str:
        return f"webhook:circuit:{webhook_id}"

    def _state(self, webhook_id: str) -> dict[str, Any]:
        try:
            return dict(self.backend.get(self._key(webhook_id)) or {})
        except Exception as exc:
            _cache_unavailable("get", self._key(webhook_id), exc)
            return {}

    def is_open(self, webhook_id: str) -> bool:
        opened_until = self._state(webhook_id).get("opened_until")
        return opened_until is not None and self._clock() < opened_until

    def record_failure(self, webhook_id: str) -> None:
        state = self._state(webhook_id)
        failures = int(state.get("failures", 0)) + 1
        state["failures"] = failures
        if failures >= self.threshold:
            state["opened_until"] = self._clock() + self.cooldown_seconds
            incr_metric("webhook.delivery.circuit_opened")
            log_event("webhook_circuit_opened", level=logging.WARNING, webhook_id=webhook_id, failures=failures)
        try:
            self.backend.set(self._key(webhook_id), state, self.cooldown_seconds * 2)
        except Exception as exc:
            _cache_unavailable("set", self._key(webhook_id), exc)

    def reset(self, webhook_id: str) -> None:
        try:
            self.backend.delete(self._key(webhook_id))
        except Exception as exc:
            _cache_unavailable("delete", self._key(webhook_id), exc)


class DeliveryService:
    """Signs and POSTs events to merchant webhook endpoints. Failures are returned, never raised."""

    def __init__(
        self,
        *,
        circuit_breaker: CircuitBreaker | None = None,
        events: EventDispatcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.circuit_breaker = circuit_breaker or CircuitBreaker(clock=clock)
        self.events = events
        self._clock = clock

    def deliver(
        self,
        webhook: WebhookEndpoint,
        event_type: str,
        event_data: dict[str, Any],
        *,
        attempt: int = 1,
        event_id: str | None = None,
    ) -> Delivery:
        event_id = event_id or f"evt_{uuid.uuid4().hex}"
        delivery = Delivery(
            id=f"dlv_{uuid.uuid4().hex}",
            webhook_id=webhook.id,
            event_type=event_type,
            event_id=event_id,
            attempt=attempt,
        )
        started = time.perf_counter()

        if self.circuit_breaker.is_open(webhook.id):
            delivery.error = "circuit_open"
        else:
            timestamp = int(self._clock())
            body = encode_payload(build_payload(event_type, event_data, event_id=event_id, timestamp=timestamp))
            headers = self._headers(webhook, event_type, event_id, timestamp, body)
            try:
                response = _send(str(webhook.url), body, headers, webhook.timeout_seconds)
            except httpx.HTTPError as exc:
                delivery.error = f"connectivity error: {exc}"
            else:
                delivery.status_code = response.status_code
                delivery.success = 200 <= response.status_code < 300
                if not delivery.success:
                    delivery.error = f"HTTP {response.status_code}"

        delivery.response_time = time.perf_counter() - started
        self._record(webhook, delivery)
        return delivery

    def deliver_batch(
        self,
        webhooks: list[WebhookEndpoint],
        event_type: str,
        event_data: dict[str, Any],
    ) -> list[Delivery]:
        return [self.deliver(webhook, event_type, event_data) for webhook in webhooks if webhook.accepts(event_type)]

    @staticmethod
    def _headers(
        webhook: WebhookEndpoint,
        event_type: str,
        event_id: str,
        timestamp: int,
        body: bytes,
    ) -> dict[str, str]:
        signed = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "X-Event-Type": event_type,
            "X-Event-ID": event_id,
            "X-Timestamp": str(timestamp),
        }
        if webhook.secret:
            signed["X-Signature"] = signature_header_value(body, webhook.secret)
        if webhook.organization_id:
            signed["X-Organization-ID"] = webhook.organization_id
        # Configured headers never replace the ones set here, whatever their case.
        reserved = {name.lower() for name in signed}
        headers = {name: value for name, value in webhook.headers.items() if name.lower() not in reserved}
        headers.update(signed)
        return headers

    def _record(self, webhook: WebhookEndpoint, delivery: Delivery) -> None:
        if delivery.success:
            self.circuit_breaker.reset(webhook.id)
            incr_metric("webhook.delivery.succeeded")
            log_event(
                "webhook_delivered",
                webhook_id=webhook.id,
                delivery_id=delivery.id,
                event_type=delivery.event_type,
                status_code=delivery.status_code,
                attempt=delivery.attempt,
            )
        else:
            if delivery.error != "circuit_open":
                self.circuit_breaker.record_failure(webhook.id)
            incr_metric("webhook.delivery.failed", reason="circuit_open" if delivery.error == "circuit_open" else "error")
            log_event(
                "webhook_delivery_failed",
                level=logging.WARNING,
                webhook_id=webhook.id,
                delivery_id=delivery.id,
                event_type=delivery.event_type,
                status_code=delivery.status_code,
                attempt=delivery.attempt,
                error=delivery.error,
            )
        if self.events is not None:
            self.events.emit(
                "webhook.delivery.completed",
                {"delivery": delivery, "webhook_id": webhook.id, "event_type": delivery.event_type},
            )


@dataclass(frozen=True)
class RetryPolicy:
    strategy: RetryStrategyName = "exponential"
    base_delay_seconds: int = 60
    max_delay_seconds: int = 3600
    max_attempts: int = 5

    @classmethod
    def from_settings(cls, config: Any) -> "RetryPolicy":
        strategy = config.webhook_retry_strategy if config.webhook_retry_strategy in RETRY_SCHEDULES else "exponential"
        return cls(
            strategy=strategy,
            base_delay_seconds=config.webhook_retry_base_delay_seconds,
            max_delay_seconds=config.webhook_retry_max_delay_seconds,
            max_attempts=config.webhook_retry_max_attempts,
        )

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        schedule = RETRY_SCHEDULES.get(self.strategy, RETRY_SCHEDULES["exponential"])
        step = schedule[min(max(attempt, 1), len(schedule)) - 1]
        delay = float(step * self.base_delay_seconds)
        jitter_cap = min(_MAX_JITTER_SECONDS, delay * 0.1)
        delay += (rng or random).uniform(0, jitter_cap)
        return min(delay, float(self.max_delay_seconds))


@dataclass
class PendingRetry:
    id: str
    webhook: WebhookEndpoint
    event_type: str
    event_data: dict[str, Any]
    event_id: str
    attempt: int
    due_at: float


class RetryService:
    """In-process retry queue for failed deliveries; exhausted ones land in ``dead_letters``."""

    def __init__(
        self,
        delivery_service: DeliveryService,
        policy: RetryPolicy | None = None,
        *,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self.delivery_service = delivery_service
        self.policy = policy or RetryPolicy()
        self._clock = clock
        self._rng = rng
        self._lock = Lock()
        self._queue: dict[str, PendingRetry] = {}
        self.dead_letters: list[Delivery] = []

    def schedule_retry(
        self,
        webhook: WebhookEndpoint,
        delivery: Delivery,
        event_data: dict[str, Any],
    ) -> PendingRetry | None:
        next_attempt = delivery.attempt + 1
        if next_attempt > self.policy.max_attempts:
            with self._lock:
                self.dead_letters.append(delivery)
            incr_metric("webhook.retry.dead_letter")
            log_event(
                "webhook_retry_exhausted",
                level=logging.ERROR,
                webhook_id=webhook.id,
                delivery_id=delivery.id,
                event_type=delivery.event_type,
                attempts=delivery.attempt,
            )
            return None
        retry = PendingRetry(
            id=f"rty_{uuid.uuid4().hex}",
            webhook=webhook,
            event_type=delivery.event_type,
            event_data=event_data,
            event_id=delivery.event_id,
            attempt=next_attempt,
            due_at=self._clock() + self.policy.delay_for(delivery.attempt, self._rng),
        )
        with self._lock:
            self._queue[retry.id] = retry
        incr_metric("webhook.retry.scheduled", strategy=self.policy.strategy)
        log_event(
            "webhook_retry_scheduled",
            webhook_id=webhook.id,
            retry_id=retry.id,
            attempt=retry.attempt,
            due_at=retry.due_at,
        )
        return retry

    def process_pending(self, limit: int = 100) -> list[Delivery]:
        now = self._clock()
        with self._lock:
            due = sorted((r for r in self._queue.values() if r.due_at <= now), key=lambda r: r.due_at)[:limit]
            for retry in due:
                del self._queue[retry.id]
        results: list[Delivery] = []
        for retry in due:
            delivery = self.delivery_service.deliver(
                retry.webhook,
                retry.event_type,
                retry.event_data,
                attempt=retry.attempt,
                event_id=retry.event_id,
            )
            results.append(delivery)
            if not delivery.success:
                self.schedule_retry(retry.webhook, delivery, retry.event_data)
        return results

    def cancel(self, retry_id: str) -> bool:
        with self._lock:
            return self._queue.pop(retry_id, None) is not None

    @property
    def queue_size(self) -> int:
        with self._lock:
            return len(self._queue)


class TestingService:
    """Sends a synthetic ``webhook.test`` event to an endpoint."""

    __test__ = False

    def __init__(self, delivery_service: DeliveryService) -> None:
        self.delivery_service = delivery_service

    def send_test(self, webhook: WebhookEndpoint, data: dict[str, Any] | None = None) -> Delivery:
        payload = data or {"message": "Clubify Checkout webhook test", "webhook_id": webhook.id}
        return self.delivery_service.deliver(webhook, "webhook.test", payload)
