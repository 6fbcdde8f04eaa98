"""Application configuration settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "ward_occupancy"

    # Multi-document transactions need a replica set; without one a commit
    # locks every document it read, then applies its writes
    MONGODB_TRANSACTIONS: bool = True
    # Commit locks older than this are treated as abandoned
    TRANSACTION_LOCK_LEASE_SECONDS: float = 30.0

    # "mongo" or "memory"
    STORE_BACKEND: str = "mongo"

    # Optimistic transaction retry policy
    TRANSACTION_MAX_ATTEMPTS: int = 10
    TRANSACTION_TIMEOUT_SECONDS: float = 10.0
    TRANSACTION_BACKOFF_SECONDS: float = 0.02

    # Application
    APP_NAME: str = "Ward Occupancy Service"
    API_V1_PREFIX: str = "/api/v1"
    PORT: int = 8000

    # CORS
    BACKEND_CORS_ORIGINS: str = '["http://localhost:3000", "http://localhost:5173"]'

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from JSON string."""
        try:
            return json.loads(self.BACKEND_CORS_ORIGINS)
        except ValueError:
            return ["http://localhost:3000"]


settings = Settings()
