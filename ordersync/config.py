"""All settings, loaded from the .env file."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App
    app_url: str = "http://localhost:8000"
    database_url: str = "sqlite:///./ordersync.db"

    # Record store
    store_backend: str = "sql"  # "sql" or "http"
    store_url: str = ""
    store_auth_token: str = ""
    orders_collection: str = "adv_orders"
    stock_collection: str = "stock_units"

    # Dolibarr (external system of record)
    dolibarr_url: str = "https://erp.example.com/api/index.php"
    dolibarr_api_key: str = ""

    # Import behavior
    sync_page_size: int = 100
    sync_max_pages: int = 100
    detail_batch_size: int = 10
    detail_batch_pause: float = 0.1
    thirdparty_batch_size: int = 15
    thirdparty_batch_pause: float = 0.05
    users_cache_ttl_seconds: int = 600
    products_cache_ttl_seconds: int = 3600

    # Background
    sync_interval_minutes: int = 0
    refresh_interval_seconds: int = 300


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
