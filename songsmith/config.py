"""Runtime settings for the lyrics and composition services.

Explicit values win over the environment; the environment wins over defaults.
The composition API key has no default and must be supplied out of band:
  - SONGSMITH_LYRICS_URL: base URL of the lyrics / prompt backend
  - BEATOVEN_API_URL: base URL of the composition API
  - BEATOVEN_API_KEY: bearer credential for the composition API
  - SONGSMITH_HTTP_TIMEOUT: per-request timeout (seconds)
  - SONGSMITH_POLL_INTERVAL / SONGSMITH_POLL_ATTEMPTS: composition polling bounds
  - SONGSMITH_HOST / SONGSMITH_PORT: where the API server listens
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from songsmith.services.errors import ConfigurationError

DEFAULT_LYRICS_URL = "http://localhost:8001"
DEFAULT_BEATOVEN_URL = "https://public-api.beatoven.ai/api/v1"


class Settings(BaseSettings):
    """Where the services live and how long to wait for them."""

    model_config = SettingsConfigDict(
        frozen=True,
        populate_by_name=True,
        env_ignore_empty=True,
        extra="ignore",
    )

    lyrics_base_url: str = Field(
        default=DEFAULT_LYRICS_URL, validation_alias="SONGSMITH_LYRICS_URL"
    )
    beatoven_base_url: str = Field(
        default=DEFAULT_BEATOVEN_URL, validation_alias="BEATOVEN_API_URL"
    )
    beatoven_api_key: Optional[str] = Field(
        default=None, repr=False, validation_alias="BEATOVEN_API_KEY"
    )
    http_timeout: float = Field(
        default=60.0, gt=0, validation_alias="SONGSMITH_HTTP_TIMEOUT"
    )
    poll_interval: float = Field(
        default=10.0, ge=0, validation_alias="SONGSMITH_POLL_INTERVAL"
    )
    poll_attempts: int = Field(default=30, ge=1, validation_alias="SONGSMITH_POLL_ATTEMPTS")

    host: str = Field(default="0.0.0.0", validation_alias="SONGSMITH_HOST")
    port: int = Field(default=8000, ge=1, le=65535, validation_alias="SONGSMITH_PORT")

    @field_validator("beatoven_api_key", mode="before")
    @classmethod
    def _blank_key_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @classmethod
    def from_env(cls, **overrides: Any) -> "Settings":
        """Build settings from the environment; non-None overrides take precedence."""
        return cls(**{k: v for k, v in overrides.items() if v is not None})

    def require_beatoven_key(self) -> str:
        if not self.beatoven_api_key:
            raise ConfigurationError(
                "Composition service not configured. Missing: BEATOVEN_API_KEY."
            )
        return self.beatoven_api_key
