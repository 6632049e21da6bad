"""
Configuration and settings for the relay service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

STOREFRONT_ORIGINS = (
    "http://127.0.0.1:9292",
    "http://localhost:9292",
    "https://chugchamp.com",
    "https://cddgrs-yg.myshopify.com",
)


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Server
    port: int = Field(default=3000)
    log_level: str = Field(default="INFO")
    allowed_origin: Optional[str] = Field(default=None)

    # Backblaze B2
    b2_application_key_id: Optional[str] = Field(default=None)
    b2_application_key: Optional[str] = Field(default=None)
    b2_bucket_name: Optional[str] = Field(default=None)
    b2_s3_endpoint: str = Field(default="https://s3.us-west-004.backblazeb2.com")
    b2_region: str = Field(default="us-west-004")
    b2_download_url: str = Field(default="https://f004.backblazeb2.com")

    # Shopify admin API (client-credentials app)
    shopify_store_domain: Optional[str] = Field(default=None)
    shopify_client_id: Optional[str] = Field(default=None)
    shopify_client_secret: Optional[str] = Field(default=None)
    shopify_api_version: str = Field(default="2024-01")

    # Transport limits
    max_upload_bytes: int = Field(default=100 * 1024 * 1024)
    request_timeout_seconds: float = Field(default=30.0)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="RELAY_USE_IN_MEMORY_BACKENDS"
    )

    @property
    def cors_origins(self) -> list[str]:
        origins = list(STOREFRONT_ORIGINS)
        if self.allowed_origin:
            origins.append(self.allowed_origin)
        return origins

    @property
    def storage_configured(self) -> bool:
        return all(
            (
                self.b2_application_key_id,
                self.b2_application_key,
                self.b2_bucket_name,
            )
        )

    @property
    def catalog_configured(self) -> bool:
        return all(
            (
                self.shopify_store_domain,
                self.shopify_client_id,
                self.shopify_client_secret,
            )
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
