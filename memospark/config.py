"""
Centralized configuration management for the MemoSpark AI suggestion router.

This module provides a Pydantic Settings-based configuration system that:
- Validates environment variables at startup
- Provides type coercion (strings to ints, floats, bools)
- Groups related settings (quota, timeouts, auth, database, logging)
- Supports .env file loading

Usage:
    from memospark.config import get_settings

    settings = get_settings()
    limit = settings.quota.daily_limits["premium"]
"""

from functools import lru_cache
from typing import Dict, List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Quota Settings
# =============================================================================


class QuotaSettings(BaseSettings):
    """Daily AI request limits per subscription tier."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    quota_daily_limit_free: int = Field(
        default=10,
        ge=0,
        description="Daily AI requests for the free tier (0 for unlimited)",
    )
    quota_daily_limit_premium: int = Field(
        default=100,
        ge=0,
        description="Daily AI requests for the premium tier (0 for unlimited)",
    )
    quota_daily_limit_premium_plus: int = Field(
        default=500,
        ge=0,
        description="Daily AI requests for the premium_plus tier (0 for unlimited)",
    )
    quota_accounting_timezone: str = Field(
        default="UTC",
        description="IANA timezone whose calendar day bounds the daily quota",
    )

    @field_validator("quota_accounting_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @property
    def daily_limits(self) -> Dict[str, int]:
        """Tier value -> daily cap."""
        return {
            "free": self.quota_daily_limit_free,
            "premium": self.quota_daily_limit_premium,
            "premium_plus": self.quota_daily_limit_premium_plus,
        }

    @property
    def accounting_zone(self) -> ZoneInfo:
        return ZoneInfo(self.quota_accounting_timezone)


# =============================================================================
# Collaborator Timeouts
# =============================================================================


class TimeoutSettings(BaseSettings):
    """Upper bounds for every external call made while routing a request."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    identity_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for resolving the caller identity",
    )
    tier_lookup_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for the subscription tier lookup",
    )
    ledger_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for usage ledger reads and writes",
    )
    handler_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single generation handler invocation",
    )


# =============================================================================
# Database Settings (Postgres)
# =============================================================================


class DatabaseSettings(BaseSettings):
    """Configuration for the Postgres usage and subscription store."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: Optional[str] = Field(
        default=None,
        description="Postgres connection URL (pooled)",
    )
    database_url_direct: Optional[str] = Field(
        default=None,
        description="Direct (non-pooler) Postgres URL, preferred when set",
    )
    database_pool_min_size: int = Field(default=1, ge=0)
    database_pool_max_size: int = Field(default=5, ge=1)

    @property
    def is_configured(self) -> bool:
        """Check if a Postgres URL is available."""
        return bool(self.database_url_direct or self.database_url)


# =============================================================================
# Authentication Settings (Clerk)
# =============================================================================


class AuthSettings(BaseSettings):
    """Configuration for Clerk session token verification."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    clerk_jwks_url: Optional[str] = Field(
        default=None,
        description="JWKS URL for the Clerk instance",
    )
    clerk_jwt_issuer: Optional[str] = Field(
        default=None,
        description="Expected `iss` claim",
    )
    clerk_jwt_audience: Optional[str] = Field(
        default=None,
        description="Expected `aud` claim (many Clerk tokens omit aud)",
    )
    tier_source: Literal["database", "session_claims", "static"] = Field(
        default="database",
        description="Where the caller's subscription tier is read from",
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.clerk_jwks_url)


# =============================================================================
# Security Settings
# =============================================================================


class SecuritySettings(BaseSettings):
    """Environment, dev mode and CORS."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    dev_mode: bool = Field(
        default=False,
        description="Accept the X-User-Id header in place of a session token",
    )
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def origins_list(self) -> List[str]:
        """Get parsed list of allowed origins."""
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingSettings(BaseSettings):
    """Configuration for logging."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format_json: bool = Field(
        default=False,
        description="Force JSON log format in development",
    )
    request_logging_enabled: bool = Field(
        default=True,
        description="Enable request logging middleware",
    )
    audit_to_database: bool = Field(
        default=False,
        description="Also persist security events to the security_events table",
    )


# =============================================================================
# Monitoring Settings (Sentry)
# =============================================================================


class SentrySettings(BaseSettings):
    """Configuration for Sentry error tracking."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sentry_dsn: Optional[str] = Field(default=None)
    sentry_environment: str = Field(default="development")
    sentry_traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    sentry_release: Optional[str] = Field(default="memospark-ai@1.0.0")

    @property
    def is_configured(self) -> bool:
        return bool(self.sentry_dsn)


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """Aggregates all configuration groups."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    quota: QuotaSettings = Field(default_factory=QuotaSettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @property
    def is_database_configured(self) -> bool:
        return self.database.is_configured

    @property
    def is_sentry_configured(self) -> bool:
        return self.sentry.is_configured

    @property
    def is_dev_mode(self) -> bool:
        return self.security.dev_mode

    def get_config_summary(self) -> dict:
        """
        Get a summary of configuration status for logging.

        Never includes secrets or connection strings.
        """
        return {
            "environment": self.security.environment,
            "dev_mode": self.is_dev_mode,
            "database_configured": self.is_database_configured,
            "clerk_configured": self.auth.is_configured,
            "tier_source": self.auth.tier_source,
            "sentry_configured": self.is_sentry_configured,
            "daily_limits": self.quota.daily_limits,
            "accounting_timezone": self.quota.quota_accounting_timezone,
            "log_level": self.logging.log_level,
        }


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Call get_settings.cache_clear() (or reload_settings()) to reload.
    """
    return Settings()


def reload_settings() -> Settings:
    """Clear the cache and return fresh settings."""
    get_settings.cache_clear()
    return get_settings()
