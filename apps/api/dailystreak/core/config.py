from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AnyUrl, Field
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_env: str = Field(default="development", alias="APP_ENV")
    frontend_url: AnyUrl = Field(alias="FRONTEND_URL")

    # Supabase
    supabase_url: AnyUrl = Field(alias="SUPABASE_URL")
    supabase_anon_key: str = Field(alias="SUPABASE_ANON_KEY")
    supabase_service_role_key: str = Field(alias="SUPABASE_SERVICE_ROLE_KEY")

    # Observability
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(
        default=0.0, alias="SENTRY_TRACES_SAMPLE_RATE"
    )

    # Streaks
    streak_default_threshold: int = Field(default=50, alias="STREAK_DEFAULT_THRESHOLD")
    streak_default_timezone: str = Field(default="UTC", alias="STREAK_DEFAULT_TIMEZONE")
    daily_stats_page_size: int = Field(default=1000, alias="DAILY_STATS_PAGE_SIZE")
    refresh_single_flight: bool = Field(default=True, alias="REFRESH_SINGLE_FLIGHT")

    # Store retries
    store_retry_attempts: int = Field(default=3, alias="STORE_RETRY_ATTEMPTS")
    store_retry_initial_wait_seconds: float = Field(
        default=0.2, alias="STORE_RETRY_INITIAL_WAIT_SECONDS"
    )
    store_retry_max_wait_seconds: float = Field(
        default=2.0, alias="STORE_RETRY_MAX_WAIT_SECONDS"
    )

    @model_validator(mode="after")
    def validate_runtime_constraints(self) -> "Settings":
        env = (self.app_env or "").strip().lower()
        is_prod = env in {"production", "prod"}

        supabase_origin = urlparse(str(self.supabase_url))
        supabase_host = (supabase_origin.hostname or "").lower()
        if is_prod and supabase_host in {"localhost", "127.0.0.1"}:
            raise ValueError(
                "Invalid SUPABASE_URL for production: localhost is not allowed."
            )

        if not (0 <= self.streak_default_threshold <= 100):
            raise ValueError("STREAK_DEFAULT_THRESHOLD must be 0..100")
        try:
            ZoneInfo(self.streak_default_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(
                f"STREAK_DEFAULT_TIMEZONE is not a known time zone: {self.streak_default_timezone!r}"
            )
        if not (1 <= self.daily_stats_page_size <= 5000):
            raise ValueError("DAILY_STATS_PAGE_SIZE must be 1..5000")
        if not (1 <= self.store_retry_attempts <= 10):
            raise ValueError("STORE_RETRY_ATTEMPTS must be 1..10")
        if self.store_retry_initial_wait_seconds < 0:
            raise ValueError("STORE_RETRY_INITIAL_WAIT_SECONDS must be >= 0")
        if self.store_retry_max_wait_seconds < self.store_retry_initial_wait_seconds:
            raise ValueError(
                "STORE_RETRY_MAX_WAIT_SECONDS must be >= STORE_RETRY_INITIAL_WAIT_SECONDS"
            )

        return self


settings = Settings()  # type: ignore[call-arg]  # singleton import via env settings
