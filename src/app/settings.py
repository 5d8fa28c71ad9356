# src/app/settings.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Compute project root: repo/ (two levels up from this file: repo/src/app/settings.py)
PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """
    Central application configuration.

    Sources (highest precedence first):
      1. Environment variables (prefixed with APP_, e.g. APP_PORT)
      2. .env file at the repo root
      3. Defaults below
    """

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="APP_",
        extra="ignore",
    )

    # App/server
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    host: str = Field(default="0.0.0.0", description="Server host to bind")
    port: int = Field(default=3001, description="Server port to bind")
    allowed_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Origins allowed by CORS (comma-separated in the environment)",
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Database access
    request_timeout: int = Field(default=30, ge=1, description="Driver connect timeout (s)")
    max_pool_size: int = Field(default=10, ge=1, description="PostgreSQL pool size")
    fetch_batch_size: int = Field(default=1000, ge=1, description="Rows per fetchmany()")

    # Export
    compression_level: int = Field(default=9, ge=0, le=9, description="Deflate level")
    csv_chunk_size: int = Field(default=64 * 1024, ge=1, description="CSV bytes per chunk")
    redact_errors: bool = Field(
        default=False, description="Hide raw driver errors from API responses"
    )

    # --- Validators / normalizers ---
    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, v):
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    # --- Helpers ---
    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() == "development"

    def origin_allowed(self, origin: str | None) -> bool:
        """Requests without an Origin header (curl, scripts) are always allowed."""
        if not origin:
            return True
        return origin in self.allowed_origins or self.is_development


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Singleton-style accessor so imports are cheap and consistent system-wide.
    """
    return Settings()


if __name__ == "__main__":
    # Handy for a quick sanity check:
    s = get_settings()
    print("PROJECT_ROOT:", PROJECT_ROOT)
    print("environment:", s.environment, "debug:", s.debug)
    print("host:", s.host, "port:", s.port)
    print("allowed_origins:", s.allowed_origins)
    print("request_timeout:", s.request_timeout, "max_pool_size:", s.max_pool_size)
    print("compression_level:", s.compression_level)
