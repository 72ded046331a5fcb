# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings. Every variable
takes the NEUROADAPT_ prefix (NEUROADAPT_MAX_ATTEMPTS_PER_PROVIDER=2).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from neuroadapt.llm.retry import BackoffPolicy


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="NEUROADAPT_",
        extra="ignore",
    )

    # === LLM PROVIDERS ===
    # Comma-separated "provider:model" entries, tried in order.
    provider_preference_order: str = "anthropic:claude-sonnet-4-20250514,openai:gpt-4o"
    llm_default_temperature: float = 0.3
    llm_default_max_tokens: int = 2048

    # Provider API keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    google_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"

    # === Retry / fallback ===
    max_attempts_per_provider: int = 3
    repair_attempt_budget: int = 1

    # === Backoff ===
    backoff_base_ms: int = 500
    backoff_multiplier: float = 2.0
    backoff_cap_ms: int = 8000
    backoff_jitter: float = 0.25

    # === Deadlines ===
    per_attempt_timeout_ms: int = 30_000
    overall_timeout_ms: int = 120_000

    # === Concurrency ===
    max_concurrent_in_flight: int = 4

    # === Cache ===
    cache_enabled: bool = True
    cache_backend: Literal["memory", "json", "redis"] = "memory"
    cache_ttl_ms: int = 300_000
    cache_root: Path = Path("~/.neuroadapt/cache")
    cache_redis_url: str = ""

    # === Tracking ===
    call_log_file: Path | None = None

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator(
        "max_attempts_per_provider",
        "max_concurrent_in_flight",
        "per_attempt_timeout_ms",
        "overall_timeout_ms",
        "cache_ttl_ms",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("repair_attempt_budget", "backoff_base_ms", "backoff_cap_ms")
    @classmethod
    def validate_non_negative(cls, v: int, info) -> int:  # noqa: N805
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if not self.provider_order_list:
            errors.append("PROVIDER_PREFERENCE_ORDER must name at least one provider")

        if self.backoff_cap_ms < self.backoff_base_ms:
            errors.append("BACKOFF_CAP_MS must be >= BACKOFF_BASE_MS")

        if self.backoff_multiplier < 1.0:
            errors.append("BACKOFF_MULTIPLIER must be >= 1.0")

        if self.backoff_jitter < 0:
            errors.append("BACKOFF_JITTER must be >= 0")

        if self.overall_timeout_ms < self.per_attempt_timeout_ms:
            errors.append("OVERALL_TIMEOUT_MS must be >= PER_ATTEMPT_TIMEOUT_MS")

        if self.cache_backend == "redis" and not self.cache_redis_url:
            errors.append("CACHE_BACKEND=redis requires CACHE_REDIS_URL")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def provider_order_list(self) -> list[str]:
        """Parse comma-separated provider preference order."""
        return [p.strip() for p in self.provider_preference_order.split(",") if p.strip()]

    def backoff_policy(self) -> BackoffPolicy:
        """Backoff policy in seconds."""
        return BackoffPolicy(
            base_delay_s=self.backoff_base_ms / 1000,
            multiplier=self.backoff_multiplier,
            cap_s=self.backoff_cap_ms / 1000,
            jitter=self.backoff_jitter,
        )

    @property
    def per_attempt_timeout_s(self) -> float:
        return self.per_attempt_timeout_ms / 1000

    @property
    def overall_timeout_s(self) -> float:
        return self.overall_timeout_ms / 1000

    @property
    def cache_ttl_s(self) -> float:
        return self.cache_ttl_ms / 1000


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
