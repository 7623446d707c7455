from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./chatroom.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Presence Configuration
    # A participant is evicted once its last heartbeat is older than this
    STALE_AFTER_MS: int = 10_000
    SWEEP_INTERVAL_SECONDS: float = 15.0
    SWEEPER_ENABLED: bool = True

    # Message Log Configuration
    BROADCAST_TARGET: str = "Todos"
    TIME_FORMAT: str = "%H:%M:%S"

    # HTTP Configuration
    CORS_ORIGINS: list[str] = ["*"]
    HOST: str = "0.0.0.0"
    PORT: int = 5000


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
