"""Client configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

from .errors import ConfigurationError


DEFAULT_CONFIG_DIR = Path.home() / ".rimstudio"


class ClientSettings(BaseSettings):
    base_url: str = "http://localhost:8000"
    config_dir: Path = DEFAULT_CONFIG_DIR
    timeout_seconds: float = 60.0
    google_login_path: str = "/api/auth/google"
    refresh_path: str = "/api/auth/refresh"
    upload_path: str = "/api/generations/upload"
    process_path_template: str = "/api/generations/{job_id}/process"
    generations_path: str = "/api/generations"

    model_config = {"env_prefix": "RIMSTUDIO_", "env_file": ".env", "extra": "ignore"}

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout_seconds must be greater than 0")
        return value

    @field_validator(
        "google_login_path",
        "refresh_path",
        "upload_path",
        "process_path_template",
        "generations_path",
    )
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("endpoint paths must start with '/'")
        return value

    @property
    def tokens_file(self) -> Path:
        return self.config_dir / "tokens.json"

    def process_path(self, job_id: str) -> str:
        return self.process_path_template.format(job_id=job_id)


def load_settings(**overrides: Any) -> ClientSettings:
    """Build settings from env/.env plus overrides.

    Raises:
        ConfigurationError: If any value fails validation
    """
    try:
        return ClientSettings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid settings: {problems}") from e
