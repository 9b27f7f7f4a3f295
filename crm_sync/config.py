"""Application configuration."""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./data/crm_sync.db"

    # Encryption key for integration secrets (Fernet)
    encryption_key: Optional[str] = None

    # Sync jobs
    sync_default_max_attempts: int = 3
    sync_retry_base_delay_seconds: float = 0.5
    sync_retry_max_delay_seconds: float = 10.0

    # Application
    log_level: str = "INFO"
    app_host: str = "0.0.0.0"
    app_port: int = 8000


settings = Settings()
