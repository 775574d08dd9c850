"""Configuration management using Pydantic Settings.

Loads configuration from environment variables with .env file support.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration."""

    # Database Configuration
    database_url: str = "sqlite+aiosqlite:///./cod_confirm.db"

    # Shopify Configuration (bootstraps the shopify_configs table when empty)
    shopify_shop_domain: Optional[str] = None
    shopify_access_token: Optional[str] = None
    shopify_webhook_secret: Optional[str] = None
    shopify_api_version: str = "2024-01"
    shopify_confirmed_tag: str = "Confirmado"

    # Store offset used when syncing historical orders by date
    sync_utc_offset: str = "-03:00"

    # WhatsApp Gateway Configuration
    whatsapp_gateway_url: str = "http://localhost:3001"
    whatsapp_gateway_token: Optional[str] = None

    # Message Configuration
    default_country_code: str = "57"
    default_currency: str = "COP"
    store_url: str = ""

    # Automation Configuration
    reminder_interval_minutes: int = 15
    reply_delay_min_seconds: float = 60.0
    reply_delay_max_seconds: float = 120.0

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    environment: str = "development"

    # Dashboard Configuration
    dashboard_api_key: Optional[str] = None

    # GlitchTip Error Monitoring
    glitchtip_dsn: Optional[str] = None

    # Redis (sweep lease across processes)
    redis_enabled: bool = False
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Create a global settings instance
settings = Settings()
