"""
Application configuration using Pydantic Settings.
"""

from typing import List
from pydantic import PostgresDsn, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="allow"
    )

    # Environment
    ENVIRONMENT: str = "development"
    SECRET_KEY: str
    API_V1_PREFIX: str = "/api/v1"

    # Database
    DATABASE_URL: PostgresDsn

    # Redis
    REDIS_URL: RedisDsn
    REDIS_CACHE_TTL: int = 3600  # 1 hour default

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Property catalog
    DEFAULT_LATITUDE: float = 9.0320  # Addis Ababa
    DEFAULT_LONGITUDE: float = 38.7469
    PUBLIC_LISTING_LIMIT: int = 50
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Lead pipeline
    FOLLOW_UP_WINDOW_DAYS: int = 7

    # Activity ledger
    ACTIVITY_QUEUE_MAXSIZE: int = 1000
    ACTIVITY_RETENTION_DAYS: int = 90
    ANALYTICS_DEFAULT_DAYS: int = 30
    ANALYTICS_CACHE_TTL: int = 60  # seconds

    # Rate limiting for public write endpoints
    DEFAULT_RATE_LIMIT: str = "100/minute"
    PUBLIC_WRITE_RATE_LIMIT: str = "30/minute"

    # Observability
    LOG_LEVEL: str = "INFO"

    # Deployment-time admin provisioning
    ADMIN_EMAIL: str = ""
    ADMIN_PASSWORD: str = ""
    ADMIN_PHONE: str = "+251900000000"
    ADMIN_FIRST_NAME: str = "Super"
    ADMIN_LAST_NAME: str = "Admin"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",")]
        return v


settings = Settings()
