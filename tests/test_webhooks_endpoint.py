from __future__ import annotations

import json

from fastapi.testclient import TestClient

from clubify_checkout.domain.secrets import SecretResolver, StaticSecretLookup
from clubify_checkout.domain.signatures import signature_header_value
from clubify_checkout.domain.webhook_validation import WebhookValidator
from clubify_checkout.events import EventDispatcher
from clubify_checkout.main import app
from clubify_checkout.routers import webhooks as webhooks_router


SECRET = "whsec_endpoint"
NOW = 1_700_000_010
BODY = json.dumps(
    {"event": "order.created", "data": {"id": "o1", "organization_id": "org-1"}, "timestamp": 1700000000, "id": "evt_1"},
    separators=(",", ":"),
).encode("utf-8")


def _set_validator(global_secret: str | None = SECRET, **kwargs):
    resolver = SecretResolver(global_secret=global_secret, **kwargs)
    validator = WebhookValidator(resolver, tolerance_seconds=300, clock=lambda: NOW)
    app.dependency_overrides[webhooks_router.get_webhook_validator] = lambda: validator


def _set_dispatcher() -> list[tuple[str, dict]]:
    dispatcher = EventDispatcher()
    seen: list[tuple[str, dict]] = []
    dispatcher.listen("*", lambda event: seen.append((event.name, event.data)))
    app.dependency_overrides[webhooks_router.get_event_dispatcher] = lambda: dispatcher
    return seen


def _clear_overrides():
    app.dependency_overrides.clear()


def _headers(body: bytes = BODY, secret: str = SECRET, timestamp: str = "1700000000") -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Signature": signature_header_value(body, secret),
        "X-Timestamp": timestamp,
    }


def test_valid_webhook_is_accepted_and_dispatched():
    _set_validator()
    seen = _set_dispatcher()
    client = TestClient(app)

    response = client.post("/api/webhooks/clubify", content=BODY, headers=_headers())

    assert response.status_code == 200
    assert response.json() == {
        "status": "accepted",
        "event": "order.created",
        "webhook_id": "evt_1",
        "organization_id": "org-1",
    }
    assert [name for name, _ in seen] == ["webhook.received", "webhook.order.created"]
    assert seen[0][1]["data"] == {"id": "o1", "organization_id": "org-1"}
    assert response.headers["X-Request-ID"]
    _clear_overrides()


def test_invalid_signature_returns_401_with_reason():
    _set_validator()
    _set_dispatcher()
    client = TestClient(app)

    response = client.post("/api/webhooks/clubify", content=BODY, headers=_headers(secret="wrong"))

    assert response.status_code == 401
    assert response.json()["detail"]["type"] == "webhook_rejected"
    assert response.json()["detail"]["reason"] == "invalid_signature"
    _clear_overrides()


def test_expired_timestamp_returns_401():
    _set_validator()
    _set_dispatcher()
    client = TestClient(app)

    response = client.post("/api/webhooks/clubify", content=BODY, headers=_headers(timestamp="1699999000"))

    assert response.status_code == 401
    assert response.json()["detail"]["reason"] == "expired_timestamp"
    _clear_overrides()


def test_missing_field_returns_400_naming_field():
    _set_validator()
    _set_dispatcher()
    client = TestClient(app)
    body = b'{"event":"order.created","timestamp":1700000000}'

    response = client.post("/api/webhooks/clubify", content=body, headers=_headers(body))

    assert response.status_code == 400
    assert response.json()["detail"]["reason"] == "missing_field"
    assert response.json()["detail"]["field"] == "data"
    _clear_overrides()


def test_no_secret_configured_returns_503():
    _set_validator(global_secret=None)
    _set_dispatcher()
    client = TestClient(app)

    response = client.post("/api/webhooks/clubify", content=BODY, headers=_headers())

    assert response.status_code == 503
    assert response.json()["detail"]["reason"] == "no_secret_configured"
    _clear_overrides()


def test_resolver_hook_failure_returns_503():
    def _hook(request):
        raise RuntimeError("vault down")

    _set_validator(resolver_hook=_hook)
    seen = _set_dispatcher()
    client = TestClient(app)

    response = client.post("/api/webhooks/clubify", content=BODY, headers=_headers())

    assert response.status_code == 503
    assert response.json()["detail"]["reason"] == "secret_resolution_failed"
    assert seen == []
    _clear_overrides()


def test_organization_header_selects_tenant_secret():
    _set_validator(global_secret=None, organization_lookup=StaticSecretLookup({"org-7": "org7-secret"}))
    _set_dispatcher()
    client = TestClient(app)
    headers = _headers(secret="org7-secret")
    headers["X-Organization-ID"] = "org-7"

    response = client.post("/api/webhooks/clubify", content=BODY, headers=headers)

    assert response.status_code == 200
    assert response.json()["organization_id"] == "org-7"
    _clear_overrides()


def test_default_validator_reads_settings(monkeypatch):
    monkeypatch.setattr(webhooks_router.settings, "webhook_secret", None)
    _set_dispatcher()
    client = TestClient(app)

    response = client.post("/api/webhooks/clubify", content=BODY, headers=_headers())

    assert response.status_code == 503
    _clear_overrides()


def test_health_endpoints():
    client = TestClient(app)
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/", headers={"X-Request-ID": "req-42"}).headers["X-Request-ID"] == "req-42"


def test_organization_lookup_failure_returns_503():
    class _DownLookup:
        def lookup(self, organization_id):
            raise ConnectionError("secret store down")

    _set_validator(organization_lookup=_DownLookup())
    seen = _set_dispatcher()
    client = TestClient(app)

    response = client.post("/api/webhooks/clubify", content=BODY, headers=_headers())

    assert response.status_code == 503
    assert response.json()["detail"]["reason"] == "secret_resolution_failed"
    assert seen == []
    _clear_overrides()


def test_deeply_nested_unsigned_body_returns_401():
    _set_validator()
    _set_dispatcher()
    client = TestClient(app)
    headers = {"X-Signature": "sha256=00", "X-Timestamp": "1700000000"}

    response = client.post("/api/webhooks/clubify", content=b"[" * 200_000, headers=headers)

    assert response.status_code == 401
    assert response.json()["detail"]["reason"] == "invalid_signature"
    _clear_overrides()
