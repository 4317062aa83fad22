"""Application configuration objects."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CATEGORY_ORDER = [
    "🧊 Vodka",
    "🥥 Ron",
    "🥃 Whisky / Bourbon",
    "🍸 Ginebra",
    "🌵 Tequila",
    "🔥 Mezcal",
    "🍯 Licores y Aperitivos",
    "🍷 Vermut",
    "🥂 Vinos y espumosos",
    "🥤Refrescos y agua",
    "🍻 Cerveza",
]

DEFAULT_SNAPSHOT_LOCATIONS = [
    "Rest",
    "Nevera",
    "B1",
    "Ofice B1",
    "B2",
    "Ofice B2",
    "B3",
    "Ofice B3",
    "B4",
    "Ofice B4",
    "Almacén",
]


class Settings(BaseSettings):
    """Pydantic settings used to configure the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(
        default="Bar Inventory Service",
        description="Human friendly name for the API.",
    )
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment flag used for logging.",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./inventory.db",
        description="SQLAlchemy compatible database URL.",
    )
    echo_sql: bool = Field(
        default=False,
        description="Enable SQL echo logging for debugging.",
    )
    access_control_allow_origin: str = Field(
        default="*",
        description="Allowed CORS origins for the API, comma separated.",
    )
    log_level: str = Field(default="INFO", description="Root logging level.")
    host: str = Field(default="0.0.0.0", description="Bind address for the HTTP server.")
    port: int = Field(default=8000, ge=1, le=65535)

    category_order: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CATEGORY_ORDER),
        description="Category priority used to order history exports.",
    )
    snapshot_locations: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SNAPSHOT_LOCATIONS),
        description="Preferred location column order for snapshot exports.",
    )
    warehouse_location: str = Field(
        default="Almacén",
        description="Location adjusted by bulk stock updates.",
    )
    packaging_marker: str = Field(
        default="embalajes",
        description="Category substring that switches exports to integer, non-monetary rows.",
    )

    gemini_api_key: str | None = Field(default=None, description="API key for delivery note parsing.")
    gemini_model: str = Field(default="gemini-2.5-flash")
    gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    gemini_timeout: float = Field(default=60.0, gt=0)

    @field_validator("database_url")
    @classmethod
    def _validate_sqlite_path(cls, value: str) -> str:
        if value.startswith("sqlite") and ":memory:" not in value and "///" not in value:
            raise ValueError(
                "SQLite database URLs should be in the form sqlite+aiosqlite:///path/to/db"
            )
        return value

    @field_validator("gemini_api_key")
    @classmethod
    def _strip_api_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.replace('"', "").replace("'", "").replace(" ", "").strip()
        return cleaned or None

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.access_control_allow_origin.split(",") if origin.strip()]


def configure_logging(settings: Settings) -> None:
    """Install the root logging handler at the configured level."""

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of :class:`Settings`."""

    return Settings()


__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "DEFAULT_CATEGORY_ORDER",
    "DEFAULT_SNAPSHOT_LOCATIONS",
]
