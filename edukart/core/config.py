"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="edukart-commerce", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_jwt_secret: str = Field(..., description="Supabase JWT secret (HS256) for access token verification")

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_publishable_key: str = Field(default="", description="Stripe publishable key (for frontend)")

    # Payment handshake
    payment_signature_secret: str = Field(
        default="",
        description="Shared secret used to sign payment completion callbacks (HMAC-SHA256)",
    )
    payment_currency: str = Field(default="inr", description="Currency for all checkout amounts")

    # Catalog price cache (quotes only, settlement always re-reads)
    catalog_cache_ttl: int = Field(default=60, description="Catalog price cache TTL in seconds")
    catalog_cache_size: int = Field(default=2000, description="Maximum cached catalog prices")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="EduKart <noreply@edukart.in>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Frontend application URL for email links",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
