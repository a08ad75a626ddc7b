"""Launcher configuration management using pydantic-settings."""
from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

from src.shared.constants import APP_NAME, ENV_PREFIX


def _default_app_dir() -> str:
    return str(Path.home() / f".{APP_NAME}")


class LauncherSettings(BaseSettings):
    """Environment-driven settings read once per invocation."""
    app_dir: str = Field(default_factory=_default_app_dir)
    log_location: str | None = None
    job_plan_location: str | None = None
    concurrency_value: str | None = None
    log_level: str = "WARNING"

    model_config = {
        "env_prefix": ENV_PREFIX,
        "populate_by_name": True,
        "extra": "ignore",
    }

    def resolved_log_dir(self) -> Path:
        """Directory the engine writes job logs to."""
        return Path(self.log_location or self.app_dir).expanduser()

    def resolved_job_plan_dir(self) -> Path:
        """Directory the engine keeps job plan files in."""
        if self.job_plan_location:
            return Path(self.job_plan_location).expanduser()
        return Path(self.app_dir).expanduser() / "plans"
