"""Centralised application settings loaded from environment / .env file."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """All runtime configuration for the biomirror core.

    Values are read from environment variables first, then from a *.env* file
    located at the project root.  Every variable lives in the flat
    ``BIOMIRROR_`` namespace (stripped automatically by *pydantic-settings*).
    """

    model_config = SettingsConfigDict(
        env_prefix="BIOMIRROR_",
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Fusion ────────────────────────────────────────────────
    fusion_interval_seconds: float = 0.2  # 5 Hz
    fusion_staleness_policy: Literal["hold", "skip"] = "hold"
    fusion_max_sample_age_seconds: float | None = None
    state_history_size: int = 1000

    # ── Dissociation ──────────────────────────────────────────
    dissociation_history_size: int = 20

    # ── Responses ─────────────────────────────────────────────
    response_tick_seconds: float = 0.5
    response_sensitivity: float = 0.7
    response_queue_size: int = 5
    mirroring_sensitivity: float = 0.5
    random_seed: int | None = None

    # ── Session ───────────────────────────────────────────────
    default_session_minutes: float = 20.0
    auto_end_on_termination: bool = False

    # ── Notifications ─────────────────────────────────────────
    therapist_webhook_url: str = ""
    guardian_webhook_url: str = ""
    webhook_timeout_seconds: float = 10.0

    # ── Logging ───────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @property
    def default_session_seconds(self) -> float:
        return self.default_session_minutes * 60.0


@lru_cache
def get_settings() -> Settings:
    """Return a cached :class:`Settings` singleton."""
    return Settings()
