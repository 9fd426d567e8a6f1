# portal_hub/settings.py
"""
Portal Hub Settings - catalog reconciliation, pricing and order placement.
"""
from __future__ import annotations
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices

class Settings(BaseSettings):
    # =========================================================================
    # File Storage (logs)
    # =========================================================================
    PORTAL_DATA_ROOT: Path = Field(
        default=(Path(__file__).resolve().parents[2] / "portal-data"),
        validation_alias=AliasChoices("PORTAL_DATA_ROOT", "portal_data_root"),
    )
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # =========================================================================
    # Database
    # =========================================================================
    # Full async URL wins over the DB_* parts (e.g. sqlite+aiosqlite:///portal.db)
    DATABASE_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "portal_database_url"),
    )
    DB_HOST: str = Field(default="localhost", validation_alias="DB_HOST")
    DB_PORT: int = Field(default=5432, validation_alias="DB_PORT")
    DB_NAME: str = Field(default="portal_hub", validation_alias="DB_NAME")
    DB_USER: str = Field(default="postgres", validation_alias="DB_USER")
    DB_PASSWORD: str = Field(default="postgres", validation_alias="DB_PASSWORD")

    # Connection pool settings
    DB_POOL_SIZE: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    DB_MAX_OVERFLOW: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    # Attempts for a conflicting per-product / counter transaction
    TX_MAX_ATTEMPTS: int = Field(default=5, ge=1, validation_alias="TX_MAX_ATTEMPTS")

    # =========================================================================
    # Security
    # =========================================================================
    ADMIN_TOKEN: str = Field(default="", validation_alias="ADMIN_TOKEN")

    # =========================================================================
    # Catalog reconciliation
    # =========================================================================
    MASTER_DATA_TTL_HOURS: float = Field(default=10.0, gt=0, validation_alias="MASTER_DATA_TTL_HOURS")
    FEED_MAX_ROWS: int = Field(default=3000, ge=1, validation_alias="FEED_MAX_ROWS")
    FEED_CHUNK_SIZE: int = Field(default=30, ge=1, validation_alias="FEED_CHUNK_SIZE")
    FEED_CONCURRENCY: int = Field(default=15, ge=1, validation_alias="FEED_CONCURRENCY")

    # =========================================================================
    # Orders
    # =========================================================================
    ORDER_MAX_ITEMS: int = Field(default=200, ge=1, validation_alias="ORDER_MAX_ITEMS")
    DEFAULT_PRICE_TIER: str = Field(default="ціна 1", validation_alias="DEFAULT_PRICE_TIER")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

settings = Settings()

# Legacy exports for modules that only need the data root
PORTAL_DATA_ROOT = settings.PORTAL_DATA_ROOT
