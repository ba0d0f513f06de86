"""Runtime settings.

Values come from ``FORMSMITH_``-prefixed environment variables or a ``.env`` file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from formsmith.models import MAX_ELEMENTS


class Settings(BaseSettings):
    host: str = "127.0.0.1"
    port: int = 8000
    base_url: str = "http://localhost:3000"
    max_elements: int = MAX_ELEMENTS
    default_page_size: int = 12
    webhook_secret: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    generation_temperature: float = 0.7
    session_ttl_days: int = 7
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="FORMSMITH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
