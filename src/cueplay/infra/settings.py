"""
Application settings for cueplay.

This module defines all configuration settings for cueplay using Pydantic BaseSettings.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cueplay.runtime import constants


class Settings(BaseSettings):
    """Main application settings using Pydantic BaseSettings."""

    # Daemon channel
    daemon_url: str = Field(default=constants.DEFAULT_DAEMON_URL, alias="CUEPLAY_DAEMON_URL")
    reconnect_delay: float = Field(default=constants.RECONNECT_DELAY, alias="CUEPLAY_RECONNECT_DELAY")

    # Playback timing (seconds)
    min_animation_time: float = Field(
        default=constants.MIN_ANIMATION_TIME, alias="CUEPLAY_MIN_ANIMATION_TIME"
    )
    max_animation_time: float = Field(
        default=constants.MAX_ANIMATION_TIME, alias="CUEPLAY_MAX_ANIMATION_TIME"
    )
    idle_timeout: float = Field(default=constants.IDLE_TIMEOUT, alias="CUEPLAY_IDLE_TIMEOUT")
    idle_check_interval: float = Field(
        default=constants.IDLE_CHECK_INTERVAL, alias="CUEPLAY_IDLE_CHECK_INTERVAL"
    )
    advance_mode: str = Field(default="event", alias="CUEPLAY_ADVANCE_MODE")  # event|clock
    tick_interval: float = Field(default=constants.TICK_INTERVAL, alias="CUEPLAY_TICK_INTERVAL")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    env: str = Field(default="dev", alias="ENV")  # dev|prod|test

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    def validate_timing(self) -> list[str]:
        """Return a list of problems with the timing configuration."""
        problems = []
        for name in (
            "reconnect_delay",
            "min_animation_time",
            "max_animation_time",
            "idle_timeout",
            "idle_check_interval",
            "tick_interval",
        ):
            if getattr(self, name) <= 0:
                problems.append(f"{name} must be greater than zero")
        if self.min_animation_time >= self.max_animation_time:
            problems.append("min_animation_time must be less than max_animation_time")
        if self.advance_mode not in constants.ADVANCE_MODES:
            problems.append(
                f"advance_mode must be one of {', '.join(constants.ADVANCE_MODES)} "
                f"(got {self.advance_mode!r})"
            )
        return problems


def _resolve_env_file() -> str | None:
    # 1) Explicit override
    explicit = os.getenv("CUEPLAY_ENV_FILE")
    if explicit and Path(explicit).is_file():
        return explicit

    # 2) CWD .env
    cwd_env = Path.cwd() / ".env"
    if cwd_env.is_file():
        return str(cwd_env)

    # 3) Walk up from this file to find nearest .env
    here = Path(__file__).resolve()
    for parent in here.parents:
        candidate = parent / ".env"
        if candidate.is_file():
            return str(candidate)
    return None


def load_settings() -> Settings:
    """Build settings from the environment and the best-effort .env file."""
    env_file = _resolve_env_file()
    return Settings(_env_file=env_file) if env_file else Settings()  # type: ignore[call-arg]


# Global settings instance
settings = load_settings()
