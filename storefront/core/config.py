"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Every concern owns a nested settings class with its own env prefix
(CACHE_, RATE_LIMIT_, CONTACT_, SWEEP_, MAIL_, UPSTREAM_, LOG_, APP_).
Invalid values raise a ValidationError when settings are built, so a
misconfigured process fails at startup instead of coercing.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _validate_prefix(value: str) -> str:
    if not value.startswith("/"):
        raise ValueError("path prefix must start with '/'")
    return value.rstrip("/") or "/"


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log line format: structured JSON or plain text",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Where to write logs",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/app.log)",
    )
    max_bytes: int = Field(
        0,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class CacheSettings(BaseSettings):
    """API response cache and response shaping configuration."""

    enabled: bool = Field(
        True,
        description="Enable the API optimizer stage (shaping and caching)",
    )
    cache_enabled: bool = Field(
        True,
        description="Serve and store cached GET responses",
    )
    ttl_ms: int = Field(
        300_000,
        description="Time-to-live of cached responses in milliseconds",
        ge=1,
    )
    minify_response: bool = Field(
        True,
        description="Apply the response shaping step to JSON API responses",
    )
    remove_empty_fields: bool = Field(
        True,
        description="Drop null and empty-string fields while shaping",
    )
    api_prefix: str = Field(
        "/api",
        description="Only paths under this prefix are shaped and cached",
    )
    key_mode: Literal["raw", "canonical"] = Field(
        "raw",
        description=(
            "Query serialization for cache keys: 'raw' keeps insertion order, "
            "'canonical' sorts keys"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )

    @field_validator("api_prefix")
    @classmethod
    def check_prefix(cls, value: str) -> str:
        return _validate_prefix(value)


class RateLimitSettings(BaseSettings):
    """Global tiered rate limiter configuration."""

    enabled: bool = Field(True, description="Enable global rate limiting per client")
    interval_ms: int = Field(
        60_000,
        description="Fixed window size in milliseconds",
        ge=1,
    )
    default_limit: int = Field(
        1000,
        description="Requests per window for paths outside the API and admin areas",
        ge=1,
    )
    api_limit: int = Field(100, description="Requests per window under api_prefix", ge=1)
    admin_limit: int = Field(
        500,
        description="Requests per window under admin_prefix",
        ge=1,
    )
    api_prefix: str = Field("/api", description="Path prefix of the API tier")
    admin_prefix: str = Field("/admin", description="Path prefix of the admin tier")

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @field_validator("api_prefix", "admin_prefix")
    @classmethod
    def check_prefixes(cls, value: str) -> str:
        return _validate_prefix(value)


class ContactSettings(BaseSettings):
    """Contact form endpoint configuration."""

    rate_limit_requests: int = Field(
        3,
        description="Contact submissions allowed per window and client",
        ge=1,
    )
    rate_limit_window_ms: int = Field(
        15 * 60 * 1000,
        description="Contact rate limit window in milliseconds",
        ge=1,
    )
    rate_limit_message: str = Field(
        "Too many contact requests. Please try again in 15 minutes.",
        description="Message returned when the contact limit is exceeded",
    )
    recipient: str = Field(
        "info@gardentech.com.ua",
        description="Mailbox that receives contact notifications",
    )
    sender: str = Field(
        "noreply@gardentech.com.ua",
        description="From address of contact notifications",
    )
    default_subject: str = Field(
        "New enquiry from the website",
        description="Subject stored when the visitor leaves it empty",
    )
    success_message: str = Field(
        "Your message has been sent successfully!",
        description="Message returned in meta on success",
    )
    validation_message: str = Field(
        "Required fields: name, phone, email",
        description="Message returned with a 400 when the form is invalid",
    )
    store_path: str = Field(
        "/api/contact-messages",
        description="CMS collection endpoint that stores accepted messages",
    )

    model_config = SettingsConfigDict(
        env_prefix="CONTACT_",
        case_sensitive=False,
    )


class SweepSettings(BaseSettings):
    """Cadence of expired-entry sweeps for the cache and limiter tables."""

    mode: Literal["periodic", "probabilistic"] = Field(
        "periodic",
        description="'periodic' runs a background task, 'probabilistic' sweeps on requests",
    )
    interval_seconds: float = Field(
        60.0,
        description="Seconds between periodic sweeps",
        gt=0,
    )
    probability: float = Field(
        0.01,
        description="Chance per request of a sweep in probabilistic mode",
        ge=0,
        le=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="SWEEP_",
        case_sensitive=False,
    )


class MailSettings(BaseSettings):
    """Outgoing mail configuration for contact notifications."""

    backend: Literal["log", "smtp"] = Field(
        "log",
        description="'log' writes notifications to the log, 'smtp' delivers them",
    )
    host: str | None = Field(None, description="SMTP server host")
    port: int = Field(465, description="SMTP server port", ge=1, le=65535)
    username: str | None = Field(None, description="SMTP login")
    password: str | None = Field(None, description="SMTP password")
    use_ssl: bool = Field(True, description="Use SMTP over SSL instead of STARTTLS")
    timeout_seconds: float = Field(10.0, description="SMTP socket timeout", gt=0)

    model_config = SettingsConfigDict(
        env_prefix="MAIL_",
        case_sensitive=False,
    )


class UpstreamSettings(BaseSettings):
    """Headless CMS the edge forwards API and admin traffic to."""

    base_url: str | None = Field(
        None,
        description="CMS base URL, e.g. http://localhost:1337 (proxy answers 503 when unset)",
    )
    timeout_seconds: float = Field(15.0, description="Upstream request timeout", gt=0)
    api_token: str | None = Field(
        None,
        description="Bearer token for CMS write calls (contact message entries)",
    )

    model_config = SettingsConfigDict(
        env_prefix="UPSTREAM_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    compression_enabled: bool = Field(
        False,
        description="Gzip responses for clients sending Accept-Encoding: gzip",
    )
    compression_minimum_size: int = Field(
        1024,
        description="Only compress bodies of at least this many bytes",
        ge=0,
    )
    compression_level: int = Field(6, description="Gzip level (1-9)", ge=1, le=9)

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if any setting is invalid.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    contact: ContactSettings = Field(default_factory=ContactSettings)
    sweep: SweepSettings = Field(default_factory=SweepSettings)
    mail: MailSettings = Field(default_factory=MailSettings)
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
