from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
LOG_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


class Settings(BaseSettings):
    ENV: Literal["dev", "prod"] = "dev"

    # Holds sync_log and every dataset table
    DATABASE_URL: str

    # Upstream credentials. SEC asks for a contact address in the User-Agent;
    # the same header is sent to every federal host.
    FRED_API_KEY: str | None = None
    EDGAR_USER_AGENT: str = "fedsync/1.0 (data-team@example.com)"

    LOG_LEVEL: str = "INFO"
    SLACK_WEBHOOK_URL: str | None = None  # dataset failures are posted here

    # Scratch space for ZIP downloads; files are removed after each load
    TEMP_DIR: str = "/tmp/fedsync"

    HTTP_TIMEOUT_SECONDS: float = Field(default=120.0, gt=0)
    HTTP_MAX_RETRIES: int = Field(default=3, ge=1)

    # The loop only wakes the engine; each dataset decides whether it is due.
    SYNC_INTERVAL_SECONDS: int = Field(default=6 * 60 * 60, gt=0)
    SYNC_ENABLED: bool = True

    DOCS_ENABLED: bool | None = None  # None follows ENV

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        level = LOG_LEVEL_ALIASES.get(level, level)
        return level if level in LOG_LEVELS else "INFO"

    @property
    def is_production(self) -> bool:
        return self.ENV == "prod"

    @property
    def debug_enabled(self) -> bool:
        return not self.is_production

    @property
    def effective_log_level(self) -> str:
        """DEBUG and TRACE are raised to INFO in production."""
        if self.is_production and self.LOG_LEVEL in {"TRACE", "DEBUG"}:
            return "INFO"
        return self.LOG_LEVEL

    @property
    def docs_enabled(self) -> bool:
        if self.DOCS_ENABLED is not None:
            return self.DOCS_ENABLED
        return not self.is_production

    @property
    def temp_path(self) -> Path:
        return Path(self.TEMP_DIR)


settings = Settings()
