"""Application configuration using pydantic-settings."""
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    # Absent database_url falls back to the embedded SQLite file under data_dir.
    database_url: str | None = None
    storage_backend: Literal["auto", "postgres", "sqlite", "file", "memory"] = "auto"
    data_dir: Path = Path("data")

    # Identity derivation - changing this remaps every user id
    session_secret: str | None = None

    # Development mode - enables the raw user-id header bypass and verbose errors
    dev_mode: bool = False

    # Sessions
    session_store: Literal["memory", "redis"] = "memory"
    session_duration_hours: float = 24
    max_sessions_per_user: int = 5
    session_sweep_interval_seconds: float = 3600

    # Redis (only needed for the redis session store)
    redis_url: str = "redis://localhost:6379"
    redis_enabled: bool = False

    # HTTP boundary
    max_request_bytes: int = 1_000_000
    cors_origins: list[str] | str = ["http://localhost:5173"]
    admin_token: str | None = None

    log_level: str = "INFO"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @property
    def session_duration_seconds(self) -> float:
        """Session lifetime in seconds."""
        return self.session_duration_hours * 3600

    @property
    def resolved_backend(self) -> str:
        """Concrete backend name after resolving 'auto'."""
        if self.storage_backend != "auto":
            return self.storage_backend
        if self.database_url and self.database_url.startswith(("postgres", "postgresql")):
            return "postgres"
        return "sqlite"

    @property
    def async_database_url(self) -> str:
        """
        Database URL rewritten for the async driver of its dialect.

        Plain `postgresql://` and `sqlite:///` URLs (as issued by hosting providers)
        are mapped to asyncpg and aiosqlite respectively. Without a database_url the
        embedded database lives at `<data_dir>/snippets.db`.
        """
        url = self.database_url
        if not url:
            return f"sqlite+aiosqlite:///{self.data_dir / 'snippets.db'}"
        for prefix in ("postgres://", "postgresql://"):
            if url.startswith(prefix):
                return "postgresql+asyncpg://" + url[len(prefix):]
        if url.startswith("sqlite://"):
            return "sqlite+aiosqlite://" + url[len("sqlite://"):]
        return url

    @property
    def sqlite_database_url(self) -> str:
        """URL of the embedded database, ignoring a non-SQLite database_url."""
        url = self.async_database_url
        if url.startswith("sqlite"):
            return url
        return f"sqlite+aiosqlite:///{self.data_dir / 'snippets.db'}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
