"""Application settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "image-scraper-api"
    host: str = "0.0.0.0"
    port: int = Field(default=4000, ge=1, le=65535)
    log_level: str = "info"
    # Emptied on every application start.
    output_dir: Path = PROJECT_ROOT / "output"
    archive_retention_s: float = Field(default=30 * 60, ge=0.0)
    search_base_url: str = "https://www.google.com/search"
    browser_headless: bool = True
    navigation_timeout_s: float = Field(default=30.0, ge=0.1)
    load_more_timeout_s: float = Field(default=30.0, ge=0.1)
    link_timeout_s: float = Field(default=10.0, ge=0.1)
    download_timeout_s: float = Field(default=30.0, ge=0.1)
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(
        env_prefix="IMAGE_SCRAPER_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
