"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Remote API (all collaborators live behind it)
    api_base_url: str = "https://careerglide.onrender.com/api/"
    api_token: str = ""
    request_timeout_seconds: float = 15.0

    # Moderation queue
    default_page_size: int = 5
    page_size_options: List[int] = [5, 10, 20, 50]
    denial_reason_max_length: int = 500

    # App
    log_level: str = "INFO"
    debug: bool = False

    @property
    def auth_headers(self) -> dict:
        """Headers forwarded to the remote API (auth itself is external)"""
        if not self.api_token:
            return {}
        return {"Authorization": f"Bearer {self.api_token}"}

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MENTORSHIP_HUB_",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
