"""Configuration management for the library inventory backend.

Settings are read from ``LIBRARY_*`` environment variables (or a ``.env``
file) and validated with pydantic-settings. The app factory receives an
explicit ``ServerConfig``; ``get_config()`` only exists for the process entry
point and scripts.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    """Process-wide settings for the HTTP server and the store."""

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="library-inventory",
        description="Name reported by the API and the health check",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    # === Database Configuration ===

    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides database_path when set",
    )

    database_path: Path = Field(
        default=Path("data/library.db"),
        description="SQLite database file path",
    )

    # === HTTP Configuration ===

    http_host: str = Field(
        default="127.0.0.1",
        description="Interface the HTTP server binds to",
    )

    http_port: int = Field(
        default=3000,
        description="HTTP server port",
        ge=1024,
        le=65535,
    )

    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the API from a browser",
    )

    # === Security Configuration ===

    secret_key: str = Field(
        default="change-this-secret-in-production",
        description="Key used to sign staff bearer tokens",
        min_length=8,
        repr=False,
    )

    token_max_age: int = Field(
        default=12 * 60 * 60,
        description="Bearer token lifetime in seconds",
        ge=60,
    )

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Echo SQL and enable verbose logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        """Server names are used in logs and health responses."""
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    @field_validator("http_port")
    @classmethod
    def validate_http_port(cls, v: int) -> int:
        reserved_ports = {3306, 5432, 6379}
        if v in reserved_ports:
            raise ValueError(f"Port {v} is commonly reserved, choose another")
        return v

    # === Computed Properties ===

    @property
    def is_development(self) -> bool:
        return self.debug or self.log_level == "DEBUG"

    def get_database_url(self) -> str:
        """Return the SQLAlchemy URL, preferring ``database_url`` when set."""
        if self.database_url:
            return self.database_url
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{self.database_path.absolute()}"


class _ConfigStore:
    """Internal storage for the process configuration."""

    _instance: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Get or create the process configuration."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = ServerConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Drop the cached configuration (used by tests)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
