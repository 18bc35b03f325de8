"""
設定 — 環境変数 / .env から読み込む
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Remote API
    API_BASE_URL: str = "https://app.tablecrm.com/api/v1"
    HTTP_TIMEOUT: float | None = None  # None = タイムアウトなし

    # Catalog
    CUSTOMERS_PAGE_SIZE: int = 20

    # Sale document
    SALE_UNIT_ID: int = 116
    SALE_OPERATION: str = "Заказ"

    # Token storage
    REDIS_URL: str = "redis://localhost:6379"
    TOKEN_STORAGE_KEY: str = "tablecrm_token"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)


settings = Settings()
