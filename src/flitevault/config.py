"""Configuration management for flitevault."""

import os
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FLITEVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Runtime environment (development, staging, production)",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Admin API
    server_host: str = Field(default="localhost", description="Admin API host")
    server_port: int = Field(default=3340, description="Admin API port")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Origins allowed to call the admin API (the portal frontend)",
    )

    # Snapshot format
    product_name: str = Field(
        default="b4flite",
        description="Product label used in snapshot filenames",
    )
    format_version: str = Field(
        default="1.8",
        description="Envelope format version written on export",
    )
    backup_dir: Path = Field(
        default=Path("."),
        description="Directory snapshot files are written to",
    )

    # Restore behaviour
    chunk_size: int = Field(
        default=1000,
        ge=1,
        le=10_000,
        description="Rows per upsert call",
    )
    reject_ambiguous_matches: bool = Field(
        default=False,
        description=(
            "Abort a restore when two backup entities reconcile to the same live entity "
            "instead of letting the last match win"
        ),
    )

    # Hosted store (PostgREST / Supabase)
    supabase_url: str = Field(default="", description="Base URL of the hosted store")
    supabase_key: SecretStr = Field(
        default=SecretStr(""),
        description="API key sent as the apikey header",
    )
    access_token: SecretStr = Field(
        default=SecretStr(""),
        description="User access token (defaults to the API key when empty)",
    )
    page_size: int = Field(
        default=1000,
        ge=1,
        le=100_000,
        description="Rows requested per page when reading a full table",
    )
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")

    @model_validator(mode="after")
    def check_store_fallbacks(self) -> "Settings":
        """Fall back to the portal's own env vars for store credentials."""
        if not self.supabase_url:
            fallback = os.environ.get("SUPABASE_URL", "") or os.environ.get(
                "NEXT_PUBLIC_SUPABASE_URL", ""
            )
            if fallback:
                object.__setattr__(self, "supabase_url", fallback)

        if not self.supabase_key.get_secret_value():
            fallback = os.environ.get("SUPABASE_ANON_KEY", "") or os.environ.get(
                "NEXT_PUBLIC_SUPABASE_ANON_KEY", ""
            )
            if fallback:
                object.__setattr__(self, "supabase_key", SecretStr(fallback))

        return self

    @property
    def bearer_token(self) -> str:
        """Token sent as Authorization bearer."""
        return self.access_token.get_secret_value() or self.supabase_key.get_secret_value()


# Global settings instance
settings = Settings()
