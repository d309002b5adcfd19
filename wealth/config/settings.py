"""
Configuration Management for Wealth

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external services the app talks to
(database, Clerk, Gemini, Inngest, SMTP) and keeps every knob in one place.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///./wealth.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )
    pool_pre_ping: bool = Field(
        default=True,
        description="Check pooled connections before use"
    )

    @field_validator('url')
    @classmethod
    def normalize_postgres_scheme(cls, v: str) -> str:
        """Hosted Postgres providers hand out postgres:// URLs; SQLAlchemy wants postgresql://."""
        if v.startswith("postgres://"):
            return "postgresql://" + v[len("postgres://"):]
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Model used for monthly insights"
    )
    vision_model_name: str = Field(
        default="gemini-2.0-flash",
        description="Multimodal model used for receipt scanning"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class ClerkSettings(BaseSettings):
    """Clerk session token verification and user profile lookup."""

    model_config = SettingsConfigDict(
        env_prefix="CLERK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    jwks_url: Optional[str] = Field(
        default=None,
        description="JWKS endpoint of the Clerk frontend API"
    )
    issuer: Optional[str] = Field(
        default=None,
        description="Expected 'iss' claim of session tokens"
    )
    authorized_parties: str = Field(
        default="",
        description="Comma-separated list of allowed 'azp' origins"
    )
    leeway_seconds: int = Field(
        default=5,
        ge=0,
        description="Clock skew tolerance when checking exp/nbf"
    )
    secret_key: Optional[str] = Field(
        default=None,
        description="Backend API key, used to read profiles when the session token has no email"
    )
    api_url: str = Field(
        default="https://api.clerk.com/v1",
        description="Clerk Backend API base URL"
    )

    @property
    def authorized_parties_list(self) -> list[str]:
        return [p.strip() for p in self.authorized_parties.split(",") if p.strip()]


class InngestSettings(BaseSettings):
    """Background job scheduler configuration."""

    model_config = SettingsConfigDict(
        env_prefix="INNGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_id: str = Field(
        default="wealth",
        description="Inngest app ID shown in the dashboard"
    )
    is_production: bool = Field(
        default=False,
        description="Require signed requests from Inngest Cloud"
    )
    event_key: Optional[str] = Field(
        default=None,
        description="Key used to send events"
    )
    signing_key: Optional[str] = Field(
        default=None,
        description="Key used to verify webhook requests"
    )

    # Job tuning
    recurring_throttle_limit: int = Field(
        default=10,
        ge=1,
        description="Recurring transactions processed per user per minute"
    )
    budget_alert_threshold_percent: float = Field(
        default=80.0,
        gt=0.0,
        le=100.0,
        description="Percentage of the budget that triggers an alert"
    )
    insight_retention_months: int = Field(
        default=12,
        ge=1,
        description="Insights older than this are deleted by the cleanup job"
    )
    audit_retention_days: int = Field(
        default=90,
        ge=1,
        description="Audit events older than this are deleted by the cleanup job"
    )


class NotificationSettings(BaseSettings):
    """Outgoing email for budget alerts and monthly reports."""

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    host: Optional[str] = Field(
        default=None,
        description="SMTP host; notifications are only logged when unset"
    )
    port: int = Field(
        default=587,
        description="SMTP port"
    )
    username: Optional[str] = None
    password: Optional[str] = None
    use_tls: bool = Field(
        default=True,
        description="Upgrade the connection with STARTTLS"
    )
    sender: str = Field(
        default="Wealth <noreply@wealth.app>",
        description="From header for outgoing mail"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.host)


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Debug-level console logs and tracebacks in API error responses"
    )
    frontend_origin: str = Field(
        default="http://localhost:8501",
        description="Origin allowed by CORS"
    )

    # Receipt upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported image formats"
    )

    currency_symbol: str = Field(
        default="$",
        max_length=3,
        description="Currency symbol used in prompts and notifications"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def is_development(self) -> bool:
        return self.app_environment == "development"


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are built on access so a partially configured
    # environment can still start (e.g. no SMTP, no Clerk in tests).

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def clerk(self) -> ClerkSettings:
        return ClerkSettings()

    @property
    def inngest(self) -> InngestSettings:
        return InngestSettings()

    @property
    def notifications(self) -> NotificationSettings:
        return NotificationSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry explaining every failure.
    Useful for startup checks and the settings page.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.database
        results["database"] = True
    except Exception as e:
        results["database"] = False
        results["database_error"] = str(e)

    try:
        gemini = settings.gemini
        results["gemini"] = gemini.is_configured
        if not gemini.is_configured:
            results["gemini_error"] = "GEMINI_API_KEY not configured"
    except Exception as e:
        results["gemini"] = False
        results["gemini_error"] = str(e)

    try:
        clerk = settings.clerk
        results["clerk"] = bool(clerk.jwks_url)
        if not clerk.jwks_url:
            results["clerk_error"] = "CLERK_JWKS_URL not configured"
    except Exception as e:
        results["clerk"] = False
        results["clerk_error"] = str(e)

    try:
        _ = settings.inngest
        results["inngest"] = True
    except Exception as e:
        results["inngest"] = False
        results["inngest_error"] = str(e)

    try:
        notifications = settings.notifications
        results["notifications"] = notifications.is_configured
        if not notifications.is_configured:
            results["notifications_error"] = "SMTP_HOST not configured (alerts are logged only)"
    except Exception as e:
        results["notifications"] = False
        results["notifications_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
