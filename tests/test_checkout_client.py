from __future__ import annotations

import httpx

from clubify_checkout.config import Settings
from clubify_checkout.providers.checkout import client as checkout_client


class _FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str | None = None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else str(payload))
        self.content = b"" if payload is None and not text else b"x"

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def test_requests_use_base_url_bearer_auth_and_tenant(monkeypatch):
    calls: list[dict] = []

    def _fake_request_with_retry(**kwargs):
        calls.append(kwargs)
        return _FakeResponse(200, {"data": {"id": "o1"}})

    monkeypatch.setattr(checkout_client, "_request_with_retry", _fake_request_with_retry)
    api = checkout_client.CheckoutApiClient(
        "ck-test-key",
        base_url="https://checkout.example/api/v1/",
        tenant_id="tenant-1",
        max_attempts=4,
    )

    assert api.get("/orders/o1", params={"expand": "items"}) == {"data": {"id": "o1"}}
    api.post("orders", {"amount": 100})

    assert calls[0]["method"] == "GET"
    assert calls[0]["url"] == "https://checkout.example/api/v1/orders/o1"
    assert calls[0]["params"] == {"expand": "items"}
    assert calls[0]["max_attempts"] == 4
    assert calls[0]["headers"]["Authorization"] == "Bearer ck-test-key"
    assert calls[0]["headers"]["X-Tenant-ID"] == "tenant-1"
    assert calls[0]["headers"]["User-Agent"].startswith("clubify-checkout-python/")
    assert calls[1]["method"] == "POST"
    assert calls[1]["json_payload"] == {"amount": 100}


def test_status_codes_map_to_error_categories(monkeypatch):
    responses = {
        "auth": _FakeResponse(401, text="unauthorized"),
        "missing": _FakeResponse(404, text="not found"),
        "invalid": _FakeResponse(422, text="bad input"),
        "busy": _FakeResponse(503, text="unavailable"),
    }

    def _fake_request_with_retry(**kwargs):
        return responses[kwargs["url"].rsplit("/", 1)[-1]]

    monkeypatch.setattr(checkout_client, "_request_with_retry", _fake_request_with_retry)
    api = checkout_client.CheckoutApiClient("ck-test-key", base_url="https://checkout.example")

    expected = {"auth": "terminal", "missing": "not_found", "invalid": "terminal", "busy": "transient"}
    for path, category in expected.items():
        try:
            api.get(path)
        except checkout_client.CheckoutApiError as exc:
            assert exc.category == category
            assert exc.retryable is (category == "transient")
            assert exc.path == path
        else:
            raise AssertionError(f"Expected CheckoutApiError for {path}")


def test_empty_body_returns_none_and_non_json_raises(monkeypatch):
    responses = iter([_FakeResponse(204), _FakeResponse(200, text="<html>")])
    monkeypatch.setattr(checkout_client, "_request_with_retry", lambda **kwargs: next(responses))
    api = checkout_client.CheckoutApiClient("ck-test-key")

    assert api.delete("orders/o1") is None
    try:
        api.get("orders/o1")
    except checkout_client.CheckoutApiError as exc:
        assert "non-JSON" in str(exc)
    else:
        raise AssertionError("Expected CheckoutApiError for non-JSON body")


def test_connectivity_errors_are_transient(monkeypatch):
    def _fake_request_with_retry(**kwargs):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(checkout_client, "_request_with_retry", _fake_request_with_retry)
    api = checkout_client.CheckoutApiClient("ck-test-key")
    try:
        api.get("orders")
    except checkout_client.CheckoutApiError as exc:
        assert exc.category == "transient"
        assert isinstance(exc.__cause__, httpx.ConnectError)
    else:
        raise AssertionError("Expected CheckoutApiError")


def test_missing_api_key_fails_before_any_request(monkeypatch):
    calls = []
    monkeypatch.setattr(checkout_client, "_request_with_retry", lambda **kwargs: calls.append(kwargs))
    api = checkout_client.CheckoutApiClient(None)
    try:
        api.get("orders")
    except checkout_client.CheckoutApiError as exc:
        assert "api key" in str(exc).lower()
    else:
        raise AssertionError("Expected CheckoutApiError")
    assert calls == []


def test_retry_loop_retries_retryable_status(monkeypatch):
    statuses = iter([503, 502, 200])
    sent = []

    class _FakeHttpxClient:
        def __init__(self, timeout):
            self.timeout = timeout

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def request(self, **kwargs):
            sent.append(kwargs)
            return _FakeResponse(next(statuses), {"ok": True})

    monkeypatch.setattr(checkout_client.httpx, "Client", _FakeHttpxClient)
    monkeypatch.setattr(checkout_client.time, "sleep", lambda seconds: None)

    response = checkout_client._request_with_retry(
        method="GET",
        url="https://checkout.example/orders",
        headers={},
        timeout_seconds=5,
        max_attempts=3,
    )
    assert response.status_code == 200
    assert len(sent) == 3


def test_from_settings_resolves_environment_base_url():
    production = checkout_client.CheckoutApiClient.from_settings(
        Settings(api_key="k", environment="production", tenant_id="t1")
    )
    sandbox = checkout_client.CheckoutApiClient.from_settings(Settings(api_key="k"))
    custom = checkout_client.CheckoutApiClient.from_settings(
        Settings(api_key="k", base_url="https://checkout.internal/api/")
    )

    assert production.base_url == "https://checkout.svelve.com/api/v1"
    assert production.tenant_id == "t1"
    assert sandbox.base_url == "https://sandbox.svelve.com/api/v1"
    assert custom.base_url == "https://checkout.internal/api"
