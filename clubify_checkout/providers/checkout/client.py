from __future__ import annotations

import logging
import random
import time
from typing import Any

import httpx

from clubify_checkout import __version__
from clubify_checkout.errors import ClubifyCheckoutError
from clubify_checkout.observability import incr_metric, log_event


CHECKOUT_API_BASE = "https://sandbox.svelve.com/api/v1"
USER_AGENT = f"clubify-checkout-python/{__version__}"
_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_DEFAULT_MAX_ATTEMPTS = 3
_RETRY_BASE_DELAY_SECONDS = 0.25
_RETRY_MAX_DELAY_SECONDS = 2.0


class CheckoutApiError(ClubifyCheckoutError):
    """Checkout API call failed (connectivity, HTTP status, or undecodable body)."""

    def __init__(self, message: str, *, status_code: int | None = None, path: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.path = path

    @property
    def category(self) -> str:
        if self.status_code is None:
            return "transient" if "connectivity error" in str(self).lower() else "unknown"
        if self.status_code in _RETRYABLE_STATUS_CODES:
            return "transient"
        if self.status_code == 404:
            return "not_found"
        if 400 <= self.status_code < 500:
            return "terminal"
        return "unknown"

    @property
    def retryable(self) -> bool:
        return self.category == "transient"


def _retry_delay(attempt: int) -> float:
    delay = min(_RETRY_BASE_DELAY_SECONDS * (2 ** (attempt - 1)), _RETRY_MAX_DELAY_SECONDS)
    return delay + random.uniform(0, delay * 0.2)


def _request_with_retry(
    *,
    method: str,
    url: str,
    headers: dict[str, str],
    timeout_seconds: float,
    max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
    params: dict[str, Any] | None = None,
    json_payload: Any = None,
) -> httpx.Response:
    attempts = max(1, max_attempts)
    response: httpx.Response | None = None
    for attempt in range(1, attempts + 1):
        try:
            with httpx.Client(timeout=timeout_seconds) as client:
                response = client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    params=params,
                    json=json_payload,
                )
        except httpx.HTTPError:
            if attempt >= attempts:
                raise
            time.sleep(_retry_delay(attempt))
            continue

        if response.status_code in _RETRYABLE_STATUS_CODES and attempt < attempts:
            time.sleep(_retry_delay(attempt))
            continue
        return response

    assert response is not None
    return response


class CheckoutApiClient:
    """Thin JSON transport for the Clubify Checkout REST API."""

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str | None = None,
        tenant_id: str | None = None,
        timeout_seconds: float = 30.0,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.api_key = api_key
        self.base_url = (base_url or CHECKOUT_API_BASE).rstrip("/")
        self.tenant_id = tenant_id
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls, config: Any) -> "CheckoutApiClient":
        return cls(
            config.api_key,
            base_url=config.resolved_base_url,
            tenant_id=config.tenant_id,
            timeout_seconds=config.http_timeout_seconds,
            max_attempts=config.http_max_attempts,
        )

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "Authorization": f"Bearer {self.api_key}",
        }
        if self.tenant_id:
            headers["X-Tenant-ID"] = self.tenant_id
        return headers

    def request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_payload: Any = None,
    ) -> Any:
        if not self.api_key:
            raise CheckoutApiError("Missing Clubify Checkout API key", path=path)

        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = _request_with_retry(
                method=method,
                url=url,
                headers=self._headers(),
                timeout_seconds=self.timeout_seconds,
                max_attempts=self.max_attempts,
                params=params or None,
                json_payload=json_payload,
            )
        except httpx.HTTPError as exc:
            incr_metric("checkout_api.requests.failed", method=method, reason="connectivity")
            raise CheckoutApiError(f"Checkout API connectivity error: {exc}", path=path) from exc

        incr_metric("checkout_api.requests", method=method, status_code=response.status_code)
        if response.status_code in {401, 403}:
            raise CheckoutApiError(
                "Invalid Clubify Checkout credentials",
                status_code=response.status_code,
                path=path,
            )
        if response.status_code == 404:
            raise CheckoutApiError(f"Checkout API resource not found: {path}", status_code=404, path=path)
        if response.status_code >= 400:
            log_event(
                "checkout_api_request_failed",
                level=logging.WARNING,
                method=method,
                path=path,
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise CheckoutApiError(
                f"Checkout API returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                path=path,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise CheckoutApiError(
                "Checkout API returned non-JSON response",
                status_code=response.status_code,
                path=path,
            ) from exc

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request_json("GET", path, params=params)

    def post(self, path: str, payload: Any = None, params: dict[str, Any] | None = None) -> Any:
        return self.request_json("POST", path, params=params, json_payload=payload)

    def put(self, path: str, payload: Any = None) -> Any:
        return self.request_json("PUT", path, json_payload=payload)

    def patch(self, path: str, payload: Any = None) -> Any:
        return self.request_json("PATCH", path, json_payload=payload)

    def delete(self, path: str) -> Any:
        return self.request_json("DELETE", path)
