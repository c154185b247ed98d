"""
Configuration Management

Uses Pydantic BaseSettings to load configuration from environment variables.
All settings can be overridden via .env file or environment variables.

Environment Variables:
    SUPABASE_URL: Base URL of the hosted backend (REST + auth)
    SUPABASE_ANON_KEY: Public anon key used for patient-facing calls
    SUPABASE_BOOKING_KEY: Optional write credential for the booking path
    REDIS_URL: Redis connection string (cache backend)
    EMAILJS_SERVICE_ID / EMAILJS_TEMPLATE_ID / EMAILJS_PUBLIC_KEY: Notifier
    ADMIN_EMAILS: Comma-separated admin recipients for booking notifications
    APP_ENV: Environment name (development/staging/production)
    DEBUG: Enable debug mode (default: False)
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Backend (Table Store) Configuration
    supabase_url: str = "http://localhost:54321"
    """Base URL of the hosted backend.

    REST tables live under {supabase_url}/rest/v1, auth under
    {supabase_url}/auth/v1.
    """

    supabase_anon_key: str = ""
    """Public anon key. Row-level security decides what it may read back."""

    supabase_booking_key: Optional[str] = None
    """Narrowly scoped write credential for the booking path.

    When set, appointment inserts are always read back and a permission
    error on insert fails the booking instead of continuing optimistically.
    """

    store_timeout: float = 15.0
    """HTTP timeout for Table Store requests, in seconds."""

    # Redis / Cache Configuration
    redis_url: str = "redis://localhost:6379/0"
    """Redis connection URL.

    Format: redis://host:port/db
    Used as the cache backend when cache_backend is "redis".
    """

    cache_backend: Literal["redis", "memory"] = "redis"
    """Which cache backend to construct at startup."""

    cache_prefix: str = "health_app_"
    """Namespace prefix for every cache key."""

    cache_default_expiration: float = 3600.0
    """Default cache entry lifetime in seconds (1 hour)."""

    cache_stale_window: float = 86400.0
    """How long past expiration an entry is kept as a stale fallback, in
    seconds (1 day). Also bounds how long Redis holds any cache key."""

    doctors_cache_expiration: float = 3600.0
    """Lifetime of the cached doctor list in seconds."""

    slots_cache_expiration: float = 60.0
    """Lifetime of cached slot lists in seconds.

    Kept short: a stale slot only costs the patient a conflict message,
    because booking re-checks availability.
    """

    # Retry Configuration (read paths only)
    retry_max_attempts: int = 3
    retry_timeout: float = 10.0
    retry_base_delay: float = 1.0

    # Notifier (EmailJS)
    emailjs_service_id: Optional[str] = None
    emailjs_template_id: Optional[str] = None
    emailjs_public_key: Optional[str] = None
    emailjs_private_key: Optional[str] = None
    emailjs_api_url: str = "https://api.emailjs.com/api/v1.0/email/send"

    admin_emails: str = ""
    """Comma-separated admin emails.

    Used before falling back to the admin_users table, which row-level
    security may hide from the anon key.
    """

    # Booking
    booking_horizon_days: int = 90
    """How far ahead patients may look for slots (about three months)."""

    reconcile_interval: float = 300.0
    """Seconds between reconciliation sweeps of pending appointments."""

    reconcile_grace_period: float = 600.0
    """Minimum age in seconds of a pending appointment before the sweep
    treats it as orphaned."""

    # Application Environment
    app_env: Literal["development", "staging", "production"] = "development"
    """Current application environment.

    Options:
    - development: Local development, verbose logging, debug enabled
    - staging: Pre-production testing environment
    - production: Live production environment, minimal logging
    """

    debug: bool = False
    """Enable debug mode."""

    # Application Configuration
    app_name: str = "clinic-booking"
    """Application name."""

    host: str = "0.0.0.0"
    """Host to bind the application server."""

    port: int = 8000
    """Port to bind the application server."""

    # CORS Configuration
    cors_origins: str = "http://localhost:5173"
    """Comma-separated list of allowed CORS origins."""

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def cors_origins_list(self) -> list[str]:
        """Split cors_origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def admin_emails_list(self) -> list[str]:
        """Split admin_emails into a list, dropping blanks."""
        return [e.strip() for e in self.admin_emails.split(",") if e.strip()]

    @property
    def emailjs_configured(self) -> bool:
        """True when every EmailJS identifier needed to send is present."""
        return bool(
            self.emailjs_service_id
            and self.emailjs_template_id
            and self.emailjs_public_key
        )

    @property
    def rest_url(self) -> str:
        """REST endpoint root of the Table Store."""
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    @property
    def auth_url(self) -> str:
        """Auth endpoint root."""
        return f"{self.supabase_url.rstrip('/')}/auth/v1"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once and reused
    across the application.

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from clinic_booking.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.cache_prefix)
        health_app_
    """
    return Settings()


# Module-level settings instance for easy imports
settings = get_settings()
