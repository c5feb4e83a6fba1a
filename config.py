from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Portfolio Platform API"
    APP_ENV: str = "local"
    PORT: int = 5000
    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # DB
    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "portfolio"
    MIGRATE_PROFILES_ON_STARTUP: bool = True

    # Auth; ACCESS_TOKEN_SECRET is accepted as an alternative name for the secret
    JWT_SECRET: Optional[str] = None
    ACCESS_TOKEN_SECRET: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    BCRYPT_ROUNDS: int = 12

    # Media host
    CLOUDINARY_CLOUD_NAME: Optional[str] = None
    CLOUDINARY_API_KEY: Optional[str] = None
    CLOUDINARY_API_SECRET: Optional[str] = None

    # Contact notifications
    EMAIL_HOST: str = "smtp.gmail.com"
    EMAIL_PORT: int = 465
    EMAIL_USER: Optional[str] = None
    EMAIL_PASS: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
