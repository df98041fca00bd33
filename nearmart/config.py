from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from decimal import Decimal
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT Settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # App Settings
    APP_NAME: str = "NearMart Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Pricing
    TAX_RATE: Decimal = Decimal("0.1")
    DELIVERY_FEE: Decimal = Decimal("5.00")
    EXPECTED_DELIVERY_DAYS: int = 3

    # Checkout
    ORDER_NUMBER_PREFIX: str = "NM"
    ORDER_NUMBER_MAX_ATTEMPTS: int = 5

    # Geocoding (OpenStreetMap Nominatim by default)
    GEOCODER_BASE_URL: str = "https://nominatim.openstreetmap.org"
    GEOCODER_USER_AGENT: str = "nearmart-backend/1.0"
    GEOCODER_TIMEOUT_SECONDS: float = 10.0
    GEOCODER_MAX_RETRIES: int = 2
    GEOCODER_RETRY_DELAY_SECONDS: float = 1.0  # multiplied by (attempt + 1)
    GEOCODER_RATE_LIMIT: int = 60  # requests per window
    GEOCODER_RATE_WINDOW_SECONDS: int = 60
    GEOCODER_CACHE_TTL: int = 60 * 60 * 24 * 30  # 30 days
    GEOCODER_CACHE_MAX_ENTRIES: int = 100

    # Redis Cache Settings
    REDIS_URL: Optional[str] = None  # e.g., "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    CACHE_CLEANUP_INTERVAL_MINUTES: int = 60

    # Store discovery
    NEARBY_STORES_DEFAULT_RADIUS_KM: float = 5.0

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def async_database_url(self) -> str:
        """DATABASE_URL rewritten for the async psycopg driver where needed."""
        url = self.DATABASE_URL
        if url.startswith("postgresql+asyncpg://"):
            return url.replace("postgresql+asyncpg://", "postgresql+psycopg://")
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+psycopg://")
        return url

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
