from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping, Protocol

from clubify_checkout.domain.webhook_request import WebhookRequest
from clubify_checkout.errors import RejectionReason, SecretResolutionError, WebhookRejection
from clubify_checkout.observability import incr_metric, log_event


SecretScope = Literal["custom", "organization", "global"]
SecretResolverHook = Callable[[WebhookRequest], "str | None"]

CANONICAL_ORGANIZATION_PATH = ("data", "organization_id")
# Upstream payloads are not consistent; these spellings are accepted but deprecated.
DEPRECATED_ORGANIZATION_PATHS = (
    ("organization_id",),
    ("data", "organizationId"),
)


class SecretLookup(Protocol):
    def lookup(self, organization_id: str) -> str | None: ...


@dataclass(frozen=True)
class WebhookSecret:
    value: str = field(repr=False)
    scope: SecretScope
    organization_id: str | None = None


class StaticSecretLookup:
    """Dict-backed organization secret store."""

    def __init__(self, secrets: Mapping[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def lookup(self, organization_id: str) -> str | None:
        return self._secrets.get(organization_id)


def _dig(payload: Any, path: tuple[str, ...]) -> Any:
    current = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def extract_organization_id(payload: Any) -> tuple[str | None, str | None]:
    """Return (organization_id, dotted key path) from a decoded webhook payload."""
    for path in (CANONICAL_ORGANIZATION_PATH, *DEPRECATED_ORGANIZATION_PATHS):
        value = _dig(payload, path)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text, ".".join(path)
    return None, None


class SecretResolver:
    """
    Pick the HMAC secret for an inbound webhook.

    Order: custom hook, then the per-organization lookup (organization id from
    the header, else the payload), then the global secret. The first non-empty
    answer wins; exhaustion raises WebhookRejection(NO_SECRET_CONFIGURED).
    """

    def __init__(
        self,
        *,
        global_secret: str | None = None,
        organization_lookup: SecretLookup | None = None,
        resolver_hook: SecretResolverHook | None = None,
    ) -> None:
        self._global_secret = global_secret or None
        self._organization_lookup = organization_lookup
        self._resolver_hook = resolver_hook

    def resolve(self, request: WebhookRequest) -> WebhookSecret:
        custom = self._from_hook(request)
        if custom is not None:
            return custom

        organization_id = self.organization_id_for(request)
        if organization_id and self._organization_lookup is not None:
            stored = self._lookup(request, organization_id)
            if stored:
                return WebhookSecret(value=stored, scope="organization", organization_id=organization_id)
            log_event(
                "webhook_organization_secret_not_found",
                level=logging.DEBUG,
                request_id=request.request_id,
                organization_id=organization_id,
            )

        if self._global_secret:
            return WebhookSecret(value=self._global_secret, scope="global", organization_id=organization_id)

        raise WebhookRejection(
            RejectionReason.NO_SECRET_CONFIGURED,
            "No webhook secret configured for this request",
        )

    def organization_id_for(self, request: WebhookRequest) -> str | None:
        if request.organization_id:
            return request.organization_id
        organization_id, path = extract_organization_id(request.json_body())
        if organization_id and path != ".".join(CANONICAL_ORGANIZATION_PATH):
            incr_metric("webhook.organization_id.deprecated_alias", path=path)
            log_event(
                "webhook_organization_id_deprecated_alias",
                level=logging.WARNING,
                request_id=request.request_id,
                path=path,
                canonical=".".join(CANONICAL_ORGANIZATION_PATH),
            )
        return organization_id

    def _lookup(self, request: WebhookRequest, organization_id: str) -> str | None:
        try:
            return self._organization_lookup.lookup(organization_id)
        except Exception as exc:
            log_event(
                "webhook_organization_secret_lookup_failed",
                level=logging.ERROR,
                request_id=request.request_id,
                organization_id=organization_id,
                error=str(exc),
            )
            raise SecretResolutionError(f"Organization secret lookup failed: {exc}") from exc

    def _from_hook(self, request: WebhookRequest) -> WebhookSecret | None:
        if self._resolver_hook is None:
            return None
        try:
            value = self._resolver_hook(request)
        except Exception as exc:
            log_event(
                "webhook_secret_resolver_failed",
                level=logging.ERROR,
                request_id=request.request_id,
                error=str(exc),
            )
            raise SecretResolutionError(f"Webhook secret resolver hook failed: {exc}") from exc
        if not value:
            return None
        return WebhookSecret(value=str(value), scope="custom", organization_id=request.organization_id)
