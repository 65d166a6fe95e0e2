"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file).

    Variables use the ``NIGHTSYNC_`` prefix, e.g. ``NIGHTSYNC_LOG_LEVEL``.
    """

    # --- App ---
    app_name: str = "Nightsync"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # --- Settings store ---
    settings_path: Path = Path("nightsync_settings.yaml")

    # --- Sync ---
    sync_interval_seconds: float = 300.0
    max_upload_count: int = 2016  # one week of 5-minute readings
    debounce_interval_ms: int = 200
    http_timeout_seconds: float | None = None  # None = httpx default

    # --- Seed values, written only into an empty store ---
    nightscout_url: str | None = None
    nightscout_api_key: str | None = None
    nightscout_enabled: bool | None = None
    primary_role: bool | None = None

    model_config = {
        "env_prefix": "NIGHTSYNC_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
