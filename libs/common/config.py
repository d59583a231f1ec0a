from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global bridge settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "UTC"  # Site-local calendar used for every day boundary

    # Site (tenant) this bridge serves
    SITE_ID: int

    # Backend (membership / attendance store)
    BACKEND_URL: str
    BACKEND_API_TOKEN: Optional[str] = None
    BACKEND_EMAIL: Optional[str] = None
    BACKEND_PASSWORD: Optional[str] = None
    BACKEND_TIMEOUT: float = 15.0
    BACKEND_PAGE_SIZE: int = 100

    # Access-control device
    DEVICE_HOST: str
    DEVICE_PORT: int = 80
    DEVICE_SCHEME: Literal["http", "https"] = "http"
    DEVICE_USERNAME: str
    DEVICE_PASSWORD: str
    DEVICE_AUTH: Literal["digest", "basic"] = "digest"
    DEVICE_PAYLOAD_FORMAT: Literal["json", "xml"] = "json"
    DEVICE_TIMEOUT: float = 10.0
    DEVICE_DOOR_NO: int = 1
    DEVICE_PLAN_TEMPLATE_NO: str = "1"
    DEVICE_CALLBACK_URL: Optional[str] = None  # Where the device pushes events

    # Durable queue
    QUEUE_DIR: str = "./data/queue"
    QUEUE_MAX_RETRIES: int = 10

    # Schedules (minutes)
    MEMBER_SYNC_INTERVAL: int = 1
    ATTENDANCE_PULL_INTERVAL: int = 1
    QUEUE_RETRY_INTERVAL: int = 2
    PULL_WINDOW_MINUTES: int = 10

    # Worker
    REDIS_URL: str = "redis://localhost:6379/0"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("BACKEND_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator(
        "MEMBER_SYNC_INTERVAL", "ATTENDANCE_PULL_INTERVAL", "QUEUE_RETRY_INTERVAL"
    )
    @classmethod
    def interval_in_range(cls, v: int) -> int:
        if not 1 <= v <= 59:
            raise ValueError("interval must be between 1 and 59 minutes")
        return v

    @model_validator(mode="after")
    def require_backend_credentials(self) -> "Settings":
        if not self.BACKEND_API_TOKEN and not (
            self.BACKEND_EMAIL and self.BACKEND_PASSWORD
        ):
            raise ValueError(
                "Either BACKEND_API_TOKEN or both BACKEND_EMAIL and "
                "BACKEND_PASSWORD must be provided"
            )
        return self

    @property
    def device_base_url(self) -> str:
        return f"{self.DEVICE_SCHEME}://{self.DEVICE_HOST}:{self.DEVICE_PORT}"


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
