"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every default is a placeholder meant for local development only.
    """

    # Application Configuration
    app_name: str = Field(default="Rocket Deliveries", description="Application name")
    public_domain: str = Field(
        default="http://localhost:3000", description="Public URL of the application"
    )
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Listen host")
    port: int = Field(default=3000, description="Listen port")

    # Sessions
    secret_key: str = Field(default="YOUR_SECRET", description="Secret for signed cookie sessions")
    session_max_age: int = Field(
        default=60 * 60 * 24, description="Session cookie lifetime (seconds)"
    )

    # Stripe Configuration
    stripe_secret_key: str = Field(
        default="YOUR_STRIPE_SECRET_KEY", description="Stripe secret API key (sk_test_...)"
    )
    stripe_publishable_key: str = Field(
        default="YOUR_STRIPE_PUBLISHABLE_KEY", description="Stripe publishable key (pk_test_...)"
    )
    stripe_client_id: str = Field(
        default="YOUR_STRIPE_CLIENT_ID", description="Stripe Connect client ID"
    )
    stripe_webhook_secret: Optional[str] = Field(
        default=None,
        description="Webhook signing secret, used when endpoints are not registered at startup",
    )
    stripe_api_version: Optional[str] = Field(
        default=None, description="Stripe API version (SDK default when unset)"
    )
    register_webhooks: bool = Field(
        default=True, description="Register the webhook endpoint with Stripe at startup"
    )

    # Database Configuration
    database_url: str = Field(
        default="postgresql+asyncpg://localhost/rocketdeliveries",
        description="Database connection URL",
    )
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")
    database_connect_attempts: int = Field(
        default=30, description="Connection attempts at startup before giving up"
    )
    database_connect_wait: float = Field(
        default=5.0, description="Delay between startup connection attempts (seconds)"
    )

    # Google Cloud (deployment only)
    gcloud_project_id: str = Field(default="YOUR_PROJECT_ID", description="Google Cloud project ID")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("public_domain")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Store the public domain without a trailing slash."""
        return v.rstrip("/")

    @property
    def webhooks_url(self) -> str:
        """Public URL Stripe delivers Connect events to."""
        return f"{self.public_domain}/pilots/stripe/webhooks"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def is_test_mode(self) -> bool:
        """Check if using Stripe test mode."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
