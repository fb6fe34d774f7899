"""Application configuration loaded with pydantic-settings.

Every setting can be overridden through ``LINKSHARE_``-prefixed environment
variables or a ``.env`` file in the working directory.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from linkshare.services.database import is_memory_database


class Settings(BaseSettings):
    """Runtime settings for the sharing services and their HTTP surface."""

    model_config = SettingsConfigDict(
        env_prefix="LINKSHARE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Persistence ---
    DATABASE_PATH: str = Field(
        default="linkshare.db",
        description="SQLite file holding projects, shared links and client entries",
    )

    # --- External data-access service ---
    DATA_ACCESS_URL: str = Field(
        default="http://localhost:9081",
        description="Base URL of the data-access service fronting project collections",
    )
    DATA_ACCESS_TIMEOUT: float = Field(
        default=10.0,
        gt=0,
        description="Seconds before a data-access request is abandoned",
    )

    # --- Shared links ---
    TOKEN_BYTES: int = Field(
        default=24,
        ge=16,
        description="Random bytes used to mint each shared link token",
    )

    # --- Schema coordination ---
    SCHEMA_SETTLE_DELAY: float = Field(
        default=0.0,
        ge=0,
        description="Seconds to wait before re-reading a project after a schema change (0 disables the re-read)",
    )
    SCHEMA_UPDATE_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        description="Compare-and-swap attempts for the canonical schema snapshot",
    )

    # --- Audit trail ---
    AUDIT_RETRY_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        description="Attempts made to record a client entry before giving up",
    )
    AUDIT_RETRY_BACKOFF: float = Field(
        default=0.2,
        ge=0,
        description="Base delay in seconds between audit attempts, doubled after each failure",
    )

    # --- Server ---
    HOST: str = Field(default="127.0.0.1", description="Server bind host")
    PORT: int = Field(default=8000, description="Server bind port")

    # --- Logging ---
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("DATABASE_PATH")
    @classmethod
    def validate_database_path(cls, v: str) -> str:
        if is_memory_database(v):
            raise ValueError("DATABASE_PATH must name a database file, not an in-memory database")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v_upper


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings instance."""
    return Settings()
