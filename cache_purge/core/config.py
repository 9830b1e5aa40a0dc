"""Configuration settings for the cache purge service."""

from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Service Configuration
    service_name: str = "cache-purge"
    environment: str = "development"

    # Internal CDN (Fastly)
    hlx_fastly_purge_token: Optional[str] = None

    # Inner CDN (Cloudflare) zones
    cloudflare_purge_token: Optional[str] = None
    hlx_live_zone_id: Optional[str] = None
    hlx_cloudflare_live_zone_id: Optional[str] = None
    hlx_page_zone_id: Optional[str] = None
    hlx_cloudflare_page_zone_id: Optional[str] = None
    aem_live_zone_id: Optional[str] = None
    aem_cloudflare_live_zone_id: Optional[str] = None
    aem_page_zone_id: Optional[str] = None
    aem_cloudflare_page_zone_id: Optional[str] = None

    # Managed purge proxy
    hlx_admin_managed_purgeproxy_token: Optional[str] = None

    # Config service
    hlx_config_service_token: Optional[str] = None
    config_service_url: str = "https://config.aem.page"

    # Purge behaviour
    purge_grace_period: float = 0.5  # seconds
    cloudfront_retry_delay: float = 1.0  # seconds
    akamai_timeout: float = 10.0  # seconds
    internal_concurrency: int = 32
    dns_max_depth: int = 5

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
