from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PATCHBAY_", extra="ignore")

    log_level: str = "WARNING"
    mixer_channels: int = Field(default=8, ge=1)
    log_compile: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
