"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_log_settings() -> "LogSettings":
    return LogSettings()


def _build_app_settings() -> "AppSettings":
    return AppSettings()


def _build_guard_settings() -> "GuardSettings":
    """Build guard settings from environment.

    Pydantic Settings (v2) populates values from environment variables; the
    factory keeps nested settings lazy so env loading above takes effect.
    """

    return GuardSettings()


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field(
        "json",
        description="json for machine-friendly logs, plain for local development",
    )
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    users: str | None = Field(
        None,
        description="Comma-separated username:password pairs accepted by the login endpoint",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class GuardSettings(BaseSettings):
    """Brute-force guard configuration.

    Wait bounds are in milliseconds, lifetime in seconds. Leaving
    ``lifetime_seconds`` unset derives it from the wait schedule.
    """

    free_retries: int = Field(
        2,
        description="Requests allowed before any delay is enforced",
        ge=0,
    )
    min_wait_ms: int = Field(
        500,
        description="First delay of the escalating schedule, in milliseconds",
        ge=1,
    )
    max_wait_ms: int = Field(
        15 * 60 * 1000,
        description="Largest delay of the escalating schedule, in milliseconds",
        ge=1,
    )
    lifetime_seconds: int | None = Field(
        None,
        description="Seconds a throttle window survives (0 = forever, unset = derived)",
        ge=0,
    )
    refresh_lifetime_on_request: bool = Field(
        True,
        description="Restart the lifetime on every allowed request",
    )
    attach_reset_to_request: bool = Field(
        True,
        description="Expose a chained reset shortcut on the request context",
    )
    fail_policy: Literal["too_many_requests", "forbidden", "mark"] = Field(
        "too_many_requests",
        description="How rejected requests are answered",
    )
    store_error_policy: Literal["raise", "log_and_continue", "log_and_deny"] = Field(
        "raise",
        description="What to do when the throttle store fails",
    )
    store_backend: Literal["memory", "redis", "null"] = Field(
        "memory",
        description="Counter store backend",
    )
    store_prefix: str = Field(
        "bruteguard:",
        description="Prefix applied to every store key",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL when store_backend=redis",
    )
    proxy_depth: int = Field(
        0,
        description="Trusted proxies in front of the app (0 ignores X-Forwarded-For)",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="BRUTE_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    guard: GuardSettings = Field(default_factory=_build_guard_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
