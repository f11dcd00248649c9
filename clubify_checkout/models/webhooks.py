from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, HttpUrl


RetryStrategyName = Literal["immediate", "linear", "exponential", "fibonacci"]


class WebhookEndpoint(BaseModel):
    """Outbound delivery target as configured on the Checkout API."""
    id: str
    url: HttpUrl
    secret: str | None = Field(default=None, repr=False)
    events: list[str] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    active: bool = True
    organization_id: str | None = None

    def accepts(self, event_type: str) -> bool:
        if not self.active:
            return False
        if not self.events or "*" in self.events:
            return True
        return event_type in self.events


class WebhookCreateRequest(BaseModel):
    url: HttpUrl
    events: list[str] = Field(min_length=1)
    secret: str | None = Field(default=None, repr=False)
    description: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    retry_strategy: RetryStrategyName = "exponential"
    max_retries: int = Field(default=5, ge=0, le=20)
    active: bool = True

    model_config = {
        "json_schema_extra": {
            "example": {
                "url": "https://merchant.example/webhooks/clubify",
                "events": ["order.created", "payment.approved"],
                "retry_strategy": "exponential",
            }
        }
    }


class InboundWebhookResponse(BaseModel):
    status: Literal["accepted"]
    event: str
    webhook_id: str | None = None
    organization_id: str | None = None
