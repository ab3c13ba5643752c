"""Environment-driven settings for stepflow.

Pipelines and group executors read their defaults from here when the caller
does not pass ``concurrency`` or ``max_workers`` explicitly, and
``configure_from_settings()`` reads the logging fields.

Fields
──────
log_level    : structlog log level
log_json     : JSON renderer (True), console (False), auto (None)
concurrency  : default group backend (auto, threads, async, sequential)
max_workers  : upper bound on concurrently running steps in one group

Examples:
    >>> import os
    >>> os.environ["STEPFLOW_CONCURRENCY"] = "sequential"
    >>> reset_settings()
    >>> get_settings().concurrency
    'sequential'
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CONCURRENCY_CHOICES = ("auto", "threads", "async", "sequential")


class StepflowSettings(BaseSettings):
    """Settings shared by every pipeline in the process."""

    model_config = SettingsConfigDict(
        env_prefix="STEPFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Execution ────────────────────────────────────────────────
    concurrency: str = Field(default="auto", description="Default group backend")
    max_workers: int | None = Field(default=None, ge=1, description="Max concurrent steps per group")

    @field_validator("concurrency")
    @classmethod
    def _known_concurrency(cls, value: str) -> str:
        value = value.lower()
        if value not in CONCURRENCY_CHOICES:
            raise ValueError(f"concurrency must be one of {', '.join(CONCURRENCY_CHOICES)}")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


@lru_cache(maxsize=1)
def get_settings() -> StepflowSettings:
    """Return the process-wide settings (read once, then cached)."""
    return StepflowSettings()


def reset_settings() -> None:
    """Drop the cached settings so the next ``get_settings()`` re-reads the environment."""
    get_settings.cache_clear()
