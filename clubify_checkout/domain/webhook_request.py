from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


DEFAULT_SIGNATURE_HEADER = "X-Signature"
DEFAULT_TIMESTAMP_HEADER = "X-Timestamp"
DEFAULT_ORGANIZATION_HEADER = "X-Organization-ID"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    wanted = name.lower()
    for key, value in headers.items():
        if str(key).lower() == wanted:
            text = str(value).strip()
            return text or None
    return None


@dataclass(frozen=True)
class WebhookRequest:
    """One inbound webhook call: raw body plus the headers the pipeline reads."""
    body: bytes
    signature: str | None = None
    timestamp: str | None = None
    organization_id: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    request_id: str | None = None
    source_ip: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @classmethod
    def from_headers(
        cls,
        body: bytes,
        headers: Mapping[str, str],
        *,
        signature_header: str = DEFAULT_SIGNATURE_HEADER,
        timestamp_header: str = DEFAULT_TIMESTAMP_HEADER,
        organization_header: str = DEFAULT_ORGANIZATION_HEADER,
        request_id: str | None = None,
        source_ip: str | None = None,
    ) -> "WebhookRequest":
        return cls(
            body=body,
            signature=_header(headers, signature_header),
            timestamp=_header(headers, timestamp_header),
            organization_id=_header(headers, organization_header),
            headers=dict(headers),
            request_id=request_id or _header(headers, "X-Request-ID"),
            source_ip=source_ip,
        )

    def json_body(self) -> Any:
        """Decoded body, or None when it is not valid UTF-8 JSON."""
        try:
            return json.loads(self.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError):
            return None
