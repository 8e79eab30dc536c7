"""Application settings using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Supabase
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_role_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_ROLE_KEY")
    supabase_events_table: str = Field(default="events", alias="SUPABASE_EVENTS_TABLE")

    # Headless browser
    browser_headless: bool = Field(default=True, alias="BROWSER_HEADLESS")
    browser_user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        alias="BROWSER_USER_AGENT",
    )
    browser_locale: str = Field(default="zh-TW", alias="BROWSER_LOCALE")
    browser_nav_timeout_ms: int = Field(default=60000, alias="BROWSER_NAV_TIMEOUT_MS")
    browser_settle_delay_ms: int = Field(default=3000, alias="BROWSER_SETTLE_DELAY_MS")
    page_max_attempts: int = Field(default=2, alias="PAGE_MAX_ATTEMPTS")
    page_retry_delay: float = Field(default=2.0, alias="PAGE_RETRY_DELAY")

    # Session cookies for sources behind a login wall (Instagram, Facebook)
    cookies_json: str | None = Field(default=None, alias="COOKIES_JSON")
    cookies_file: str = Field(default="cookies.json", alias="COOKIES_FILE")

    # Crawl limits
    crawl_max_candidates: int = Field(default=30, alias="CRAWL_MAX_CANDIDATES")
    summary_date_threshold: int = Field(default=5, alias="SUMMARY_DATE_THRESHOLD")
    min_location_overlap: int = Field(default=1, alias="MIN_LOCATION_OVERLAP")

    # Vision extraction (OpenAI-compatible endpoint, several keys comma separated)
    vision_enabled: bool = Field(default=True, alias="VISION_ENABLED")
    vision_api_keys: str = Field(default="", alias="VISION_API_KEYS")
    vision_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai/",
        alias="VISION_BASE_URL",
    )
    vision_model: str = Field(default="gemini-2.0-flash", alias="VISION_MODEL")
    vision_timeout: float = Field(default=60.0, alias="VISION_TIMEOUT")

    # Geocoding (Google Geocoding API)
    google_maps_api_key: str | None = Field(default=None, alias="GOOGLE_MAPS_API_KEY")
    geocode_delay_seconds: float = Field(default=0.2, alias="GEOCODE_DELAY_SECONDS")
    geocode_language: str = Field(default="zh-TW", alias="GEOCODE_LANGUAGE")
    geocode_region: str = Field(default="tw", alias="GEOCODE_REGION")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(default="console", alias="LOG_FORMAT")
    log_file: str | None = Field(default="logs/crawler.log", alias="LOG_FILE")

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    # Crawler modes
    dry_run: bool = Field(default=False, alias="DRY_RUN")

    @property
    def vision_keys(self) -> list[str]:
        """Configured vision API keys, in rotation order."""
        return [k.strip() for k in self.vision_api_keys.split(",") if k.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
