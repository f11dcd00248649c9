from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    api_key: str | None = None
    tenant_id: str | None = None
    organization_id: str | None = None
    environment: str = "sandbox"  # sandbox | production
    base_url: str | None = None
    http_timeout_seconds: float = 30.0
    http_max_attempts: int = 3
    cache_enabled: bool = True
    cache_prefix: str = "clubify_checkout"
    cache_default_ttl_seconds: int = 300
    events_enabled: bool = True
    webhook_secret: str | None = None
    webhook_signature_header: str = "X-Signature"
    webhook_timestamp_header: str = "X-Timestamp"
    webhook_organization_header: str = "X-Organization-ID"
    webhook_tolerance_seconds: int = 300
    webhook_delivery_timeout_seconds: float = 10.0
    webhook_circuit_breaker_threshold: int = 5
    webhook_circuit_breaker_cooldown_seconds: int = 300
    webhook_retry_strategy: str = "exponential"  # immediate | linear | exponential | fibonacci
    webhook_retry_max_attempts: int = 5
    webhook_retry_base_delay_seconds: int = 60
    webhook_retry_max_delay_seconds: int = 3600

    model_config = SettingsConfigDict(
        env_prefix="CLUBIFY_CHECKOUT_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def resolved_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        if self.environment == "production":
            return "https://checkout.svelve.com/api/v1"
        return "https://sandbox.svelve.com/api/v1"


settings = Settings()
