"""Application configuration and logging setup."""
import logging
import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Persisted file next to the package unless DB_PATH says otherwise
DEFAULT_DB_PATH = os.path.join(os.path.dirname(__file__), "judging.sqlite")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    APP_NAME: str = "Expo Tabulator"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    DB_PATH: str = DEFAULT_DB_PATH
    ORGANIZER_KEY: SecretStr = SecretStr("change-me")

    # Public scoreboard falls back to polling when no push channel is wired up
    SCOREBOARD_POLL_SECONDS: int = Field(default=3, ge=1, le=60)
    PODIUM_SIZE: int = Field(default=3, ge=1)


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
