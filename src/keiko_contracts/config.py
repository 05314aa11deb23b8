"""Runtime configuration loaded from the environment."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    'http://localhost:3000',
    'http://localhost:8000',
    'http://localhost:3001',
    'http://localhost:8001',
)


class Settings(BaseSettings):
    """Gateway settings.

    Every field maps to an upper-case environment variable of the same name,
    e.g. ``PORT`` or ``CONTRACTS_ROOT``. Values may also come from a ``.env``
    file in the working directory.
    """

    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    host: str = Field(default='0.0.0.0', description='Interface to bind')  # nosec B104
    port: int = Field(default=3000, ge=0, le=65535, description='Listening port')
    log_level: str = Field(default='info', description='Root log level')
    log_format: str = Field(default='json', description="'json' or 'text'")

    contracts_root: Path = Field(default=Path('contracts'))
    frontend_spec: str = 'backend-frontend-api-v1.yaml'
    backend_spec: str = 'backend-frontend-api-v1.yaml'

    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_CORS_ORIGINS),
    )

    rate_limit_max: int = Field(default=1000, ge=1)
    rate_limit_window_seconds: int = Field(default=15 * 60, ge=1)
    strict_rate_limit_max: int = Field(default=100, ge=1)
    strict_rate_limit_window_seconds: int = Field(default=60, ge=1)
    rate_limit_storage_uri: str = Field(
        default='memory://',
        description='limits storage URI shared by both quotas, e.g. redis://host:6379',
    )

    @field_validator('cors_origins', mode='before')
    @classmethod
    def _split_origins(cls, value: object) -> object:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(',') if origin.strip()]
        return value

    @field_validator('log_format')
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        normalised = value.lower()
        if normalised not in {'json', 'text'}:
            msg = "LOG_FORMAT must be either 'json' or 'text'."
            raise ValueError(msg)
        return normalised


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, parsed once."""
    return Settings()
