# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings. Every field
can be set through a ``PARAVAULT_``-prefixed environment variable, e.g.
``PARAVAULT_CLASSIFY_BATCH_SIZE=10``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from paravault.ratelimit.limiter import ProviderPolicy


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PARAVAULT_",
        extra="ignore",
    )

    # === LLM PROVIDER ===
    llm_provider: Literal["anthropic", "google"] = "anthropic"
    llm_fast_model: str = "claude-3-5-haiku-latest"
    llm_precise_model: str = "claude-sonnet-4-20250514"
    llm_max_tokens: int = 4096
    llm_temperature: float = 0.1
    llm_timeout_s: float = 60.0

    # Provider API keys
    anthropic_api_key: str = ""
    google_api_key: str = ""

    # === Classification dispatch ===
    classify_batch_size: int = 5
    precise_batch_size: int = 1
    max_concurrent_batches: int = 5
    max_retries: int = 3
    escalation_threshold: float = 0.8
    confirmation_threshold: float = 0.5

    # === Extraction ===
    extract_max_length: int = 5000
    preview_length: int = 800

    # === Rate limits (override the provider defaults) ===
    rate_limit_interval_ms: int | None = None
    rate_limit_slots: int | None = None

    # === Vault state ===
    state_dirname: str = ".paravault"
    trash_backend: Literal["system", "vault"] = "vault"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("escalation_threshold", "confirmation_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("thresholds must be within [0, 1]")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        for name in (
            "classify_batch_size",
            "precise_batch_size",
            "max_concurrent_batches",
            "extract_max_length",
            "preview_length",
        ):
            if getattr(self, name) < 1:
                errors.append(f"{name.upper()} must be >= 1")

        if self.max_retries < 0:
            errors.append("MAX_RETRIES must be >= 0")

        if self.confirmation_threshold > self.escalation_threshold:
            errors.append("CONFIRMATION_THRESHOLD must be <= ESCALATION_THRESHOLD")

        if self.rate_limit_interval_ms is not None and self.rate_limit_interval_ms <= 0:
            errors.append("RATE_LIMIT_INTERVAL_MS must be > 0")

        if self.rate_limit_slots is not None and self.rate_limit_slots < 1:
            errors.append("RATE_LIMIT_SLOTS must be >= 1")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    def rate_limit_overrides(self, default: ProviderPolicy) -> dict[str, ProviderPolicy]:
        """Provider policy overrides for the configured provider, if any."""
        if self.rate_limit_interval_ms is None and self.rate_limit_slots is None:
            return {}
        interval = (
            self.rate_limit_interval_ms / 1000
            if self.rate_limit_interval_ms is not None
            else default.min_interval
        )
        slots = self.rate_limit_slots if self.rate_limit_slots is not None else default.slot_count
        return {self.llm_provider: ProviderPolicy(min_interval=interval, slot_count=slots)}


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
