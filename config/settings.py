"""
Importer settings.

Read from the environment (or .env) by pydantic-settings; every limit the
pipeline applies to uploads, part numbers and image fetching lives here.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Catalog import settings.

    Field names map to upper-case env vars (SUPABASE_URL, MAX_UPLOAD_BYTES,
    IMAGE_DOWNLOAD_WORKERS, ...). Invalid values fail at import.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )
    products_table: str = Field(
        default="products",
        min_length=1,
        description="Catalog table that imports upsert into"
    )

    # ===================
    # UPLOAD
    # ===================
    max_upload_bytes: int = Field(
        default=104857600,
        ge=1024,
        description="Maximum accepted upload size in bytes (100MB)"
    )
    supported_formats: list[str] = Field(
        default=["xlsx", "xlsm", "csv"],
        description="File extensions accepted by the importer"
    )

    # ===================
    # PRODUCT FIELDS
    # ===================
    max_part_number_length: int = Field(
        default=100,
        ge=1,
        le=255,
        description="Part numbers longer than this are truncated"
    )
    default_description: str = Field(
        default="No description",
        description="Description used when both description and part number are empty"
    )
    default_category: str = Field(
        default="General",
        description="Category used when the file name yields none"
    )

    # ===================
    # IMAGES
    # ===================
    image_download_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=120,
        description="Per-request timeout for image URL downloads"
    )
    image_download_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Concurrent image downloads for delimited-text imports"
    )
    image_fallback_row_limit: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Data rows eligible for the first-available image fallback"
    )

    # ===================
    # RUNTIME
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )

    @property
    def is_production(self) -> bool:
        """Production switches log output to JSON."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """URL and key both set; the Supabase store needs both."""
        return bool(self.supabase_url and self.supabase_key)


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process; cache_clear() re-reads the environment."""
    return Settings()


settings = get_settings()
