"""Configuration settings for the check-in relay service."""

from typing import Optional, Dict, Any
from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Configuration
    service_name: str = "checkin-relay"
    port: int = 8000
    environment: str = "development"
    debug: bool = False

    # Database
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "checkin_relay"

    # Auth Service
    auth_service_url: str = "http://localhost:8001"

    # Downstream check-in endpoint
    downstream_base_url: Optional[AnyHttpUrl] = None
    downstream_api_key: Optional[str] = None
    downstream_function_path: str = "/functions/v1/webhook-checkin"
    forward_signature_header: str = "x-webhook-signature"
    forward_timeout: float = 30.0

    # Retry policy (delays in seconds)
    forward_max_attempts: int = 3
    forward_base_delay: float = 1.0
    forward_backoff_multiplier: float = 2.0

    # Connect broker
    connect_token_prefix: str = "ctok_"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    @property
    def forwarding_configured(self) -> bool:
        """Whether both downstream settings are present."""
        return self.downstream_base_url is not None and bool(self.downstream_api_key)

    def downstream_url(self, owner_id: str, webhook_token: str) -> str:
        """Build the downstream check-in URL for an owner."""
        base = str(self.downstream_base_url or "").rstrip("/")
        path = "/" + self.downstream_function_path.strip("/")
        return f"{base}{path}/{owner_id}/{webhook_token}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Broker app used for each integration kind
INTEGRATION_APPS: Dict[str, Dict[str, Any]] = {
    "typeform": {
        "name": "Typeform",
        "app_name": "typeform",
    },
    "google_forms": {
        "name": "Google Forms",
        "app_name": "google_forms",
    },
    "jotform": {
        "name": "Jotform",
        "app_name": "jotform",
    },
    "custom_webhook": {
        "name": "Custom Webhook",
        "app_name": None,
    },
}
