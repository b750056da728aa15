from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "Synergia Event Booking API"
    ENVIRONMENT: str = "development"  # development | production
    LOG_LEVEL: str = "INFO"

    # Durable store connection string
    DATABASE_URL: str = "sqlite:///./synergia.db"
    STORE_BACKEND: Literal["sql", "memory"] = "sql"

    # Per-event locking
    REDIS_URL: str = "redis://localhost:6379/0"
    LOCK_BACKEND: Literal["redis", "local"] = "redis"
    LOCK_TIMEOUT: int = 10
    LOCK_BLOCKING_TIMEOUT: int = 5

    # cancel: flag the event cancelled and keep its bookings
    # cascade: remove the event together with its bookings
    EVENT_DELETE_MODE: Literal["cancel", "cascade"] = "cancel"

    CORS_ORIGINS: list[str] = ["*"]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


settings = Settings()
