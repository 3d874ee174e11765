from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "ClassCrush Match Core"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # CORS - Allowed origins (comma-separated in env)
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8081"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Firebase (optional - falls back to the in-memory store when unset)
    FIREBASE_PROJECT_ID: str = ""
    FIREBASE_PRIVATE_KEY: str = ""
    FIREBASE_CLIENT_EMAIL: str = ""
    FIREBASE_DATABASE_URL: str = ""

    @property
    def firebase_database_url(self) -> str:
        """Explicit database URL, or the default RTDB instance of the project."""
        if self.FIREBASE_DATABASE_URL:
            return self.FIREBASE_DATABASE_URL
        return f"https://{self.FIREBASE_PROJECT_ID}-default-rtdb.firebaseio.com"

    # Cloudinary
    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_API_KEY: str = ""
    CLOUDINARY_API_SECRET: str = ""
    CLOUDINARY_ROOT_FOLDER: str = "classcrush"

    # Upstash Redis
    UPSTASH_REDIS_URL: str = ""
    UPSTASH_REDIS_TOKEN: str = ""

    # Discovery & swiping
    SWIPE_LIMIT_PER_DAY: int = 50
    INACTIVE_AFTER_DAYS: int = 90
    DISCOVER_MAX_ATTEMPTS: int = 3
    DISCOVER_RETRY_BASE_SECONDS: float = 2.0

    # Chat
    IMAGE_MESSAGE_PLACEHOLDER: str = "[image]"

    # Uploads
    MAX_REQUEST_BYTES: int = 10 * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
