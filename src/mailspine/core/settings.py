"""Settings for the mailspine dispatch driver.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    The engine itself takes everything as arguments; only the driver and
    the CLI read settings, and they read them once at startup.

    - **Pydantic validation:** Type-checked at startup, not runtime
    - **Environment-driven:** Reads ``MAILSPINE_*`` env vars and ``.env``
    - **Extra ignore:** Unknown env vars don't cause startup failures

Examples:
    >>> import os
    >>> os.environ["MAILSPINE_TICK_INTERVAL_SECONDS"] = "30"
    >>> MailspineSettings().tick_interval_seconds
    30.0

Tags:
    settings, configuration, pydantic, environment, mailspine
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mailspine.core.errors import InvalidConfigError


class MailspineSettings(BaseSettings):
    """Driver and CLI settings.

    Fields
    ──────
    database              : SQLite database holding template schedules and locks
    tick_interval_seconds : How often the driver polls for due templates
    lock_ttl_seconds      : Expiry of a per-template dispatch lock
    housekeeping_every    : Run the housekeeping reconcile pass every N ticks
    instance_id           : Lock owner id (random per process when unset)
    log_level             : Structlog log level
    json_logs             : JSON output (True), console (False), auto (None)
    """

    model_config = SettingsConfigDict(
        env_prefix="MAILSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database: Path = Field(
        default_factory=lambda: Path.home() / ".mailspine" / "mailspine.db",
        description="SQLite database with core_template_schedules",
    )

    # ── Driver ───────────────────────────────────────────────────
    tick_interval_seconds: float = Field(default=10.0, gt=0)
    lock_ttl_seconds: int = Field(default=300, gt=0)
    housekeeping_every: int = Field(default=1, ge=1)
    instance_id: str | None = None

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level


def load_settings(**overrides) -> MailspineSettings:
    """Build settings, turning pydantic failures into ``InvalidConfigError``."""
    try:
        return MailspineSettings(**overrides)
    except ValidationError as exc:
        first = exc.errors()[0]
        key = ".".join(str(part) for part in first.get("loc", ())) or "settings"
        raise InvalidConfigError(
            key, first.get("input"), message=f"Invalid configuration for {key}: {first['msg']}"
        ) from exc


@lru_cache(maxsize=1)
def get_settings() -> MailspineSettings:
    """Process-wide settings, loaded once."""
    return load_settings()
