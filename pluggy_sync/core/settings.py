"""Configuration and environment settings for the Pluggy Sync service."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the Pluggy Sync service."""

    pluggy_client_id: str = ""
    pluggy_client_secret: str = ""
    pluggy_api_key: str = ""
    pluggy_api_url: str = "https://api.pluggy.ai"
    pluggy_timeout_seconds: float = 30.0
    pluggy_max_attempts: int = 3
    pluggy_retry_base_delay: float = 0.5
    credential_ttl_hours: float = 1.9
    database_url: str = "sqlite:///jobs/documents.db"
    store_backend: str = "sql"
    firebase_service_account: str = ""
    require_auth: bool = False
    batch_write_limit: int = 450
    default_lookback_days: int = 90
    sync_max_workers: int = 4
    cron_secret: str = ""
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


def get_settings() -> "Settings":
    """Return an instance of the application settings."""
    return Settings()
