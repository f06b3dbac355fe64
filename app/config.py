# app/config.py

"""Application settings loaded from the environment (or a .env file)."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database
    DATABASE_URL: str = "sqlite:///./barber.db"
    DB_ECHO: bool = False

    # Security
    SECRET_KEY: str = "change-me-later"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Shop
    TIMEZONE: str = "America/New_York"
    SLOT_MINUTES: int = 30
    MAX_ADVANCE_DAYS: int = 30
    DEFAULT_SERVICE_MINUTES: int = 30
    FALLBACK_TO_ALL_PROFESSIONALS: bool = True
    WHATSAPP_NUMBER: str = "+258840000000"

    # Persistence retry policy
    READ_RETRY_ATTEMPTS: int = 3
    READ_RETRY_DELAY_SECONDS: float = 0.1
    BOOKING_CLAIM_ATTEMPTS: int = 3

    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
