"""
Service configuration, read from the environment (and ``.env``).

Each group has its own prefix: ``STORAGE_``, ``MOVEMENT_``, ``DIRECTORY_``
and ``API_``. Top-level values (``ENVIRONMENT``, ``LOG_LEVEL``,
``LOG_JSON``) are unprefixed.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Where the SQLite database lives and how it is pooled."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    data_dir: Path = Path("data")
    db_name: str = "stockflow.db"
    pool_size: int = Field(default=5, ge=1)
    busy_timeout: int = Field(default=30000, ge=0, description="milliseconds")

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


class MovementSettings(BaseSettings):
    """Movement orchestration rules."""

    model_config = SettingsConfigDict(env_prefix="MOVEMENT_")

    # Lets an IN_PROGRESS movement be completed with lines still open
    allow_force_complete: bool = False
    default_task_priority: int = Field(default=5, ge=1, le=10)

    conflict_max_attempts: int = Field(default=3, ge=1)
    conflict_retry_delay: float = Field(default=0.05, ge=0)
    conflict_retry_multiplier: float = Field(default=2.0, ge=1)


class DirectorySettings(BaseSettings):
    """Base URLs and paths of the reference services.

    A kind whose base URL is unset is not checked.
    """

    model_config = SettingsConfigDict(env_prefix="DIRECTORY_")

    product_service_url: str | None = None
    inventory_service_url: str | None = None
    location_service_url: str | None = None
    user_service_url: str | None = None
    timeout: float = 5.0
    max_retries: int = Field(default=2, ge=0)
    retry_delay: float = 0.2

    item_path: str = "/api/v1/items/{id}"
    lot_path: str = "/api/v1/lots/{id}"
    serial_path: str = "/api/v1/serials/{id}"
    location_path: str = "/api/locations/{id}"
    warehouse_path: str = "/api/warehouses/{id}"
    user_path: str = "/api/users/{id}"

    @field_validator(
        "product_service_url",
        "inventory_service_url",
        "location_service_url",
        "user_service_url",
    )
    @classmethod
    def strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip().rstrip("/")


class APISettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: list[str] = ["*"]
    run_migrations_on_startup: bool = True

    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=200, ge=1)

    @model_validator(mode="after")
    def default_fits_max(self) -> "APISettings":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")
        return self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "StockFlow Movement Service"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    storage: StorageSettings = Field(default_factory=StorageSettings)
    movement: MovementSettings = Field(default_factory=MovementSettings)
    directory: DirectorySettings = Field(default_factory=DirectorySettings)
    api: APISettings = Field(default_factory=APISettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


_settings: Settings | None = None


def get_settings() -> Settings:
    """Process-wide settings, loaded on first call."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
