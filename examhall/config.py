"""
Configuration settings for the examhall engine.

Uses Pydantic Settings for environment variable management with .env file support.
All variables are prefixed with EXAMHALL_ (e.g. EXAMHALL_PRODUCER_BASE_URL).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="EXAMHALL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Producer API
    # ========================================
    producer_base_url: str = Field(
        default="http://127.0.0.1:8200",
        description="Base URL of the question-pool producer API",
    )
    producer_api_key: str | None = Field(
        default=None,
        description="API key sent as X-API-Key to the producer",
    )
    request_timeout_ms: int = Field(
        default=15000,
        description="Per-request timeout in milliseconds",
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per producer call before it counts as unreachable",
    )

    # ========================================
    # Local Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".examhall",
        description="Root directory for durable local records",
    )
    snapshot_max_entries: int = Field(
        default=12,
        ge=1,
        description="Number of result snapshots kept locally",
    )

    # ========================================
    # Timers
    # ========================================
    countdown_tick_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Cadence of the visible countdown",
    )
    deadline_check_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Cadence of the deadline safety-net check",
    )
    connectivity_poll_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Cadence of producer health polling while offline",
    )

    # ========================================
    # Allocation
    # ========================================
    default_tier_set: list[int] = Field(
        default_factory=lambda: [100, 200, 250],
        description="Plan tiers used by equal_split when the pool names none",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    @property
    def store_path(self) -> Path:
        """Directory holding the structured-text record files."""
        return self.data_dir / "store"

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
