"""
maildispatch -- Centralised configuration via pydantic-settings.

Every tunable knob lives here.  Environment variables override defaults
using the ``MAILDISPATCH_`` prefix (e.g. ``MAILDISPATCH_MAX_RETRIES=4``).
Dict and list fields take JSON, e.g.
``MAILDISPATCH_PROVIDER_ENDPOINTS='{"ProviderA": "http://relay:9000/send"}'``.

Usage:
    from maildispatch.config.settings import get_settings
    settings = get_settings()          # cached
    print(settings.provider_names)
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DispatchSettings(BaseSettings):
    """Top-level configuration for the email dispatch service."""

    # ------------------------------------------------------------------
    # HTTP boundary
    # ------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 2999

    # ------------------------------------------------------------------
    # Providers (priority order = list order)
    # ------------------------------------------------------------------
    provider_names: list[str] = Field(default=["ProviderA", "ProviderB"])
    provider_endpoints: dict[str, str] = Field(default_factory=dict)
    provider_success_rates: dict[str, float] = Field(
        default={"ProviderA": 0.7, "ProviderB": 0.9},
    )
    provider_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Retry / backoff
    # ------------------------------------------------------------------
    max_retries: int = 2  # attempts per provider = max_retries + 1
    retry_base_delay_seconds: float = 1.0

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------
    circuit_breaker_threshold: int = 3
    circuit_breaker_cooldown_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Client rate limit
    # ------------------------------------------------------------------
    rate_limit_max: int = 5
    rate_limit_window_seconds: float = 60.0

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------
    prometheus_enabled: bool = True
    prometheus_port: int = 9102
    log_level: str = "INFO"
    log_format: str = "json"  # json | text

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    shutdown_grace_seconds: float = 30.0

    # ------------------------------------------------------------------
    # Pydantic-settings config
    # ------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_prefix="MAILDISPATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @field_validator("max_retries")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("circuit_breaker_threshold", "rate_limit_max")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("rate_limit_window_seconds", "provider_timeout_seconds")
    @classmethod
    def _positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("retry_base_delay_seconds", "circuit_breaker_cooldown_seconds")
    @classmethod
    def _non_negative_float(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in ("json", "text"):
            raise ValueError("must be 'json' or 'text'")
        return value


@lru_cache(maxsize=1)
def get_settings() -> DispatchSettings:
    """Return a cached instance of the application settings.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    return DispatchSettings()
