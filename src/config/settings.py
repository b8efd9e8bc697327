# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Two settings objects live here:
  - Settings: the background coordinator (EASYREAD_* env vars)
  - ProxySettings: the backend proxy service (un-prefixed env vars,
    matching the deployed service)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Coordinator settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_prefix="EASYREAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === PROXY ===
    proxy_base_url: str = "http://localhost:8787"
    proxy_timeout_s: float = 45.0
    extension_id: str = ""
    client_id: str = ""

    # === MODELS ===
    model_fast: str = "gpt-5-nano"
    model_large: str = "gpt-5-mini"
    model_fast_max_chars: int = 1200

    # === Selection limits and routing ===
    hard_max_chars: int = 12_000
    max_candidates: int = 48
    defer_words_min_chars: int = 600
    chunk_threshold_chars: int = 4500
    chunk_size_chars: int = 1600
    max_chunks: int = 8
    chunk_concurrency: int = 2

    # === Token budgets ===
    max_output_tokens: int = 1200
    max_output_tokens_retry: int = 2000
    repair_max_output_tokens: int = 1100

    # === Repair ladder ===
    max_ladder_steps: int = 5

    # === Retry / backoff ===
    retry_max_attempts: int = 3
    retry_base_delay_s: float = 0.6
    retry_jitter_s: float = 0.15

    # === Copy detection ===
    copy_ngram_size: int = 4
    copy_overlap_ratio: float = 0.55
    copy_min_tokens: int = 20
    copy_substring_min_chars: int = 70

    # === Language safety ===
    language_strategy: Literal["placeholder", "replace"] = "placeholder"
    placeholder_word: str = "something"

    # === Cache ===
    cache_enabled: bool = True
    cache_backend: Literal["memory", "json"] = "json"
    cache_root: Path = Path("~/.easyread/cache")
    cache_ttl_s: int = 7 * 24 * 60 * 60
    schema_version: str = "easyread-2026-02"

    # === Moderation ===
    moderation_enabled: bool = False

    # === Lexicon ===
    lexicon_path: Path | None = None

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("proxy_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:  # noqa: N805
        return v.rstrip("/")

    @field_validator("retry_max_attempts", "max_ladder_steps")
    @classmethod
    def validate_positive(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.chunk_threshold_chars <= self.defer_words_min_chars:
            errors.append(
                "CHUNK_THRESHOLD_CHARS must be > DEFER_WORDS_MIN_CHARS"
            )
        if self.chunk_size_chars > self.chunk_threshold_chars:
            errors.append("CHUNK_SIZE_CHARS must be <= CHUNK_THRESHOLD_CHARS")
        if self.hard_max_chars < self.chunk_threshold_chars:
            errors.append("HARD_MAX_CHARS must be >= CHUNK_THRESHOLD_CHARS")
        if self.max_chunks < 1:
            errors.append("MAX_CHUNKS must be >= 1")
        if self.chunk_concurrency < 1:
            errors.append("CHUNK_CONCURRENCY must be >= 1")
        if not 0.0 < self.copy_overlap_ratio <= 1.0:
            errors.append("COPY_OVERLAP_RATIO must be in (0, 1]")
        if self.max_output_tokens_retry < self.max_output_tokens:
            errors.append("MAX_OUTPUT_TOKENS_RETRY must be >= MAX_OUTPUT_TOKENS")
        if not self.placeholder_word.strip():
            errors.append("PLACEHOLDER_WORD must not be empty")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self


class ProxySettings(BaseSettings):
    """Proxy service settings loaded from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    allowed_extension_ids: str = ""
    allowed_models: str = "gpt-5-nano,gpt-5-mini"
    moderation_model: str = "omni-moderation-latest"

    rate_limit_window_ms: int = 60_000
    rate_limit_max_per_window: int = 20
    rate_limit_max_per_day: int = 300
    max_body_bytes: int = 512 * 1024

    host: str = "0.0.0.0"
    port: int = 8787

    @model_validator(mode="after")
    def validate_limits(self) -> ProxySettings:
        if self.rate_limit_window_ms <= 0:
            raise ConfigurationError("RATE_LIMIT_WINDOW_MS must be > 0")
        if self.rate_limit_max_per_window < 1 or self.rate_limit_max_per_day < 1:
            raise ConfigurationError("Rate limits must be >= 1")
        return self

    # --- Helpers ---

    @property
    def allowed_extension_ids_list(self) -> list[str]:
        """Parse comma-separated extension ids."""
        return [e.strip() for e in self.allowed_extension_ids.split(",") if e.strip()]

    @property
    def allowed_models_list(self) -> list[str]:
        """Parse comma-separated model allow-list, keeping its order."""
        return [m.strip() for m in self.allowed_models.split(",") if m.strip()]


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
