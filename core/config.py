from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Set

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Auth
    SECRET_KEY: str = Field(..., description="Secret used to sign and verify auth tokens")
    TOKEN_TTL_SECONDS: int = 2592000  # 30 days
    INSTRUCTOR_IDS: str = Field("", description="Comma separated user ids with instructor access")

    # Database
    DATABASE_URL: str = Field(..., description="Async connection string (postgresql+asyncpg://...)")

    # Redis
    REDIS_URL: str = Field("redis://localhost:6379/0")

    # Quiz Settings
    SESSION_TTL_SECONDS: int = 14400  # 4 hours
    MAX_QUESTIONS_PER_LESSON: int = 100
    STRUGGLING_XP_THRESHOLD: int = 100
    LEADERBOARD_LIMIT: int = 10

    # Uploads
    UPLOAD_DIR: str = "uploads"
    PUBLIC_BASE_URL: str = Field("", description="Prefix for public blob URLs, e.g. https://example.org")
    MAX_UPLOAD_SIZE_MB: int = 5

    # Environment
    CORS_ORIGINS: str = Field("", description="Comma separated list of allowed origins")
    ENV: str = "production"  # development, staging, production
    DEBUG: bool = False

    @property
    def instructor_ids(self) -> Set[str]:
        return {part.strip() for part in self.INSTRUCTOR_IDS.split(",") if part.strip()}

    @property
    def cors_origins(self) -> list:
        return [part.strip() for part in self.CORS_ORIGINS.split(",") if part.strip()]

settings = Settings()
